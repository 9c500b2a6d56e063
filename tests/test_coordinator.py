"""
PROGRESS SUBMISSION TESTS
Submitting finished pieces and fabric usage against an order.

Covers:
- Completion and status derivation (created -> processing -> completed)
- Over-completion rejected for the whole batch
- Consumption ledger rows, one per entry
- Atomicity when consumption fails mid-batch
- Idempotent resubmission, aggregated submissions, public links
- Corrections (compensating entries)
"""
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import connection
from django.test import override_settings
from django.utils import timezone

from inventory.models import Material, MaterialLedgerEntry
from orders.links import create_order_link
from orders.models import Order, OrderItem, OrderLink
from production import services
from production.models import ProgressBatch, ProgressEntry, ProgressPhoto
from production.services import reverse_progress_entry, submit_progress
from production.submissions import AggregatedSubmission, PhotoRef, ProductSubmission, SubmissionMeta
from utils.exceptions import (
    AlreadyReversed,
    DomainValidationError,
    LineItemNotFound,
    MaterialNotFound,
    NegativeQuantity,
    OrderCancelled,
    OrderLinkNotFound,
    OrderNotAcceptingProgress,
    OrderNotFound,
    QuantityExceeded,
)

pytestmark = pytest.mark.django_db

S = Order.Status


def _counts():
    return (
        ProgressBatch.objects.count(),
        ProgressEntry.objects.count(),
        MaterialLedgerEntry.objects.filter(source="production").count(),
    )


@pytest.fixture
def two_item_order(make_material, make_product, make_order):
    m1 = make_material(name="M1", stock="50")
    m2 = make_material(name="M2", stock="50")
    a = make_product(name="A", base_material=m1)
    b = make_product(name="B", base_material=m2)
    order = make_order([(a, 5), (b, 5)])
    item_a, item_b = order.items.order_by("id")
    return order, item_a, item_b, m1, m2


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------
def test_scenario_a_partial_then_full(single_item_order, tailor):
    order = single_item_order
    item = order.items.get()

    first = submit_progress(order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=4)], SubmissionMeta(user=tailor))
    assert first.line_items[0].completed == 4
    assert first.line_items[0].percentage == 40
    assert (first.previous_status, first.new_status) == (S.CREATED, S.PROCESSING)
    assert first.status_changed

    second = submit_progress(order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=6)])
    assert second.line_items[0].completed == 10
    assert second.order_completion.percentage == 100
    assert second.new_status == S.COMPLETED

    order.refresh_from_db()
    item.refresh_from_db()
    assert order.status == S.COMPLETED
    assert order.completed_pcs == 10
    assert item.completed_qty == 10 and item.is_completed and item.completed_at is not None


def test_scenario_b_completed_order_rejects_more_pieces(single_item_order):
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=10)])
    before = _counts()

    with pytest.raises(QuantityExceeded) as exc:
        submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=1)])

    assert exc.value.remaining == 0
    assert _counts() == before
    assert Order.objects.get(pk=single_item_order.pk).status == S.COMPLETED


def test_scenario_c_one_ledger_row_per_entry(two_item_order):
    order, a, b, m1, m2 = two_item_order

    result = submit_progress(order.pk, [
        ProductSubmission(line_item_id=a.pk, pcs_finished=5, fabric_used=Decimal("2.0")),
        ProductSubmission(line_item_id=b.pk, pcs_finished=5, fabric_used=Decimal("3.0")),
    ])

    rows = MaterialLedgerEntry.objects.filter(source="production")
    assert rows.count() == 2
    assert rows.get(material=m1).quantity_delta == Decimal("-2.0")
    assert rows.get(material=m2).quantity_delta == Decimal("-3.0")
    assert len(result.ledger_entries) == 2
    assert result.new_status == S.COMPLETED
    m1.refresh_from_db()
    assert m1.quantity_on_hand == Decimal("48")



def test_materials_locked_together_before_writes(two_item_order, monkeypatch):
    order, a, b, m1, m2 = two_item_order
    calls = []
    real_lock = services._lock_materials

    def recording_lock(material_ids):
        calls.append((sorted(material_ids), ProgressBatch.objects.count()))
        return real_lock(material_ids)

    monkeypatch.setattr(services, "_lock_materials", recording_lock)
    submit_progress(order.pk, [
        ProductSubmission(line_item_id=b.pk, pcs_finished=1, fabric_used=Decimal("1")),
        ProductSubmission(line_item_id=a.pk, pcs_finished=1, fabric_used=Decimal("1")),
    ])
    assert calls == [(sorted([m1.pk, m2.pk]), 0)]

def test_scenario_d_cancelled_order(make_product, make_order):
    order = make_order([(make_product(), 5)], status=S.CANCELLED)
    item = order.items.get()

    with pytest.raises(OrderCancelled):
        submit_progress(order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=1)])
    assert _counts() == (0, 0, 0)


def test_scenario_e_sequential_overflow(single_item_order):
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=6)])

    with pytest.raises(QuantityExceeded) as exc:
        submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=6)])
    assert exc.value.remaining == 4
    assert sum(ProgressEntry.objects.filter(line_item=item).values_list("pcs_finished", flat=True)) == 6


@pytest.mark.django_db(transaction=True)
def test_scenario_e_concurrent_submissions(single_item_order):
    item = single_item_order.items.get()
    barrier = threading.Barrier(2)
    outcomes = []

    def worker():
        try:
            barrier.wait()
            submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=6)])
            outcomes.append("ok")
        except QuantityExceeded:
            outcomes.append("exceeded")
        finally:
            connection.close()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["exceeded", "ok"]
    item.refresh_from_db()
    assert item.completed_qty == 6


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def test_whole_batch_fails_when_one_item_overflows(two_item_order):
    order, a, b, _, _ = two_item_order
    with pytest.raises(QuantityExceeded) as exc:
        submit_progress(order.pk, [
            ProductSubmission(line_item_id=a.pk, pcs_finished=2),
            ProductSubmission(line_item_id=b.pk, pcs_finished=6),
        ])
    assert exc.value.line_item_id == b.pk
    assert _counts() == (0, 0, 0)


@pytest.mark.parametrize(
    "row, error",
    [
        (dict(pcs_finished=-1), DomainValidationError),
        (dict(pcs_finished=0), DomainValidationError),
        (dict(pcs_finished=1, fabric_used="-0.5"), NegativeQuantity),
        (dict(pcs_finished=1, fabric_used="lots"), DomainValidationError),
        (dict(pcs_finished=1, fabric_used="NaN"), DomainValidationError),
        (dict(pcs_finished=1, fabric_used="-Infinity"), DomainValidationError),
        (dict(pcs_finished=1, fabric_used="1e12"), DomainValidationError),
        (dict(pcs_finished=0, fabric_used="0.0004"), DomainValidationError),
        (dict(pcs_finished=1, quality_score=101), DomainValidationError),
        (dict(pcs_finished=1, photos=[PhotoRef(url=f"https://img.example/{i}.jpg") for i in range(6)]), DomainValidationError),
    ],
)
def test_invalid_rows_rejected_before_writes(single_item_order, row, error):
    item = single_item_order.items.get()
    with pytest.raises(error):
        submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, **row)])
    assert _counts() == (0, 0, 0)



def test_fabric_rounded_to_ledger_precision(single_item_order, fabric):
    item = single_item_order.items.get()
    result = submit_progress(single_item_order.pk, [
        ProductSubmission(line_item_id=item.pk, pcs_finished=1, fabric_used="1.23456")
    ])
    assert result.entries[0].fabric_used == Decimal("1.235")
    assert result.ledger_entries[0].quantity_delta == Decimal("-1.235")
    fabric.refresh_from_db()
    assert fabric.quantity_on_hand == Decimal("98.765")


def test_fabric_below_precision_writes_no_ledger_row(single_item_order):
    item = single_item_order.items.get()
    result = submit_progress(single_item_order.pk, [
        ProductSubmission(line_item_id=item.pk, pcs_finished=1, fabric_used="0.0004")
    ])
    assert result.ledger_entries == []
    assert MaterialLedgerEntry.objects.filter(source="production").count() == 0

def test_empty_batch_rejected(single_item_order):
    with pytest.raises(DomainValidationError):
        submit_progress(single_item_order.pk, [])


def test_duplicate_line_item_in_batch_rejected(single_item_order):
    item = single_item_order.items.get()
    with pytest.raises(DomainValidationError):
        submit_progress(single_item_order.pk, [
            ProductSubmission(line_item_id=item.pk, pcs_finished=1),
            ProductSubmission(line_item_id=item.pk, pcs_finished=1),
        ])


def test_line_item_from_another_order(single_item_order, make_product, make_order):
    other = make_order([(make_product(name="Hoodie"), 2)]).items.get()
    with pytest.raises(LineItemNotFound):
        submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=other.pk, pcs_finished=1)])


def test_unknown_or_inactive_order(single_item_order):
    item = single_item_order.items.get()
    with pytest.raises(OrderNotFound):
        submit_progress(999999, [ProductSubmission(line_item_id=item.pk, pcs_finished=1)])

    Order.objects.filter(pk=single_item_order.pk).update(is_active=False)
    with pytest.raises(OrderNotFound):
        submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=1)])


def test_fabric_without_backing_material(make_product, make_order):
    order = make_order([(make_product(name="Sample"), 5)])
    item = order.items.get()
    with pytest.raises(MaterialNotFound):
        submit_progress(order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=1, fabric_used=Decimal("1"))])
    assert _counts() == (0, 0, 0)


def test_material_override(single_item_order, make_material):
    lining = make_material(name="Lining", stock="10")
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [
        ProductSubmission(line_item_id=item.pk, pcs_finished=1, fabric_used=Decimal("0.75"), material_id=lining.pk)
    ])
    assert MaterialLedgerEntry.objects.get(source="production").material_id == lining.pk


# ---------------------------------------------------------------------------
# Atomicity
# ---------------------------------------------------------------------------
def test_allocator_failure_rolls_back_everything(two_item_order, monkeypatch):
    order, a, b, m1, _ = two_item_order
    
    real = services.allocate_consumption
    calls = []

    def flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise Material.DoesNotExist("gone")
        return real(*args, **kwargs)

    monkeypatch.setattr(services, "allocate_consumption", flaky)

    with pytest.raises(Material.DoesNotExist):
        submit_progress(order.pk, [
            ProductSubmission(line_item_id=a.pk, pcs_finished=5, fabric_used=Decimal("2")),
            ProductSubmission(line_item_id=b.pk, pcs_finished=5, fabric_used=Decimal("3")),
        ])

    assert _counts() == (0, 0, 0)
    m1.refresh_from_db()
    assert m1.quantity_on_hand == Decimal("50")
    order.refresh_from_db()
    assert order.status == S.CREATED
    assert order.completed_pcs == 0
    assert OrderItem.objects.get(pk=a.pk).completed_qty == 0


# ---------------------------------------------------------------------------
# Terminal statuses and fabric-only reports
# ---------------------------------------------------------------------------
def test_fabric_only_after_completion_allowed(single_item_order, fabric):
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=10)])

    result = submit_progress(single_item_order.pk, [
        ProductSubmission(line_item_id=item.pk, pcs_finished=0, fabric_used=Decimal("1.2"))
    ])
    assert not result.status_changed
    assert result.ledger_entries[0].quantity_delta == Decimal("-1.2")


@override_settings(KONVEKSI_ALLOW_FABRIC_AFTER_COMPLETION=False)
def test_fabric_only_after_completion_can_be_disabled(single_item_order):
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=10)])

    with pytest.raises(OrderNotAcceptingProgress):
        submit_progress(single_item_order.pk, [
            ProductSubmission(line_item_id=item.pk, pcs_finished=0, fabric_used=Decimal("1.2"))
        ])


def test_shipped_order_rejects_pieces(make_product, make_order):
    order = make_order([(make_product(), 5)], status=S.SHIPPED)
    with pytest.raises(OrderNotAcceptingProgress):
        submit_progress(order.pk, [ProductSubmission(line_item_id=order.items.get().pk, pcs_finished=1)])


# ---------------------------------------------------------------------------
# Idempotency, photos, aggregated path
# ---------------------------------------------------------------------------
def test_repeated_client_reference_writes_nothing(single_item_order):
    item = single_item_order.items.get()
    meta = SubmissionMeta(client_reference="tablet-7:0042")
    rows = [ProductSubmission(line_item_id=item.pk, pcs_finished=3, fabric_used=Decimal("1"))]

    first = submit_progress(single_item_order.pk, rows, meta)
    before = _counts()
    again = submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=3, fabric_used=Decimal("1"))], meta)

    assert again.duplicate
    assert again.batch.pk == first.batch.pk
    assert [e.pk for e in again.entries] == [e.pk for e in first.entries]
    assert not again.status_changed
    assert _counts() == before


def test_photos_stored_with_entry(single_item_order):
    item = single_item_order.items.get()
    result = submit_progress(single_item_order.pk, [
        ProductSubmission(
            line_item_id=item.pk,
            pcs_finished=2,
            quality_score=90,
            photos=[PhotoRef(url="https://img.example/a.jpg", caption="collar")],
        )
    ])
    photo = ProgressPhoto.objects.get()
    assert photo.entry_id == result.entries[0].pk
    assert photo.caption == "collar"


def test_aggregated_submission_fills_items_in_order(two_item_order):
    order, a, b, m1, _ = two_item_order
    result = submit_progress(
        order.pk,
        AggregatedSubmission(pcs_finished=7, fabric_used=Decimal("2.5"), note="line 2"),
        SubmissionMeta(worker_name="Budi"),
    )

    assert result.batch.kind == ProgressBatch.Kind.AGGREGATED
    assert [(e.line_item_id, e.pcs_finished) for e in result.entries] == [(a.pk, 5), (b.pk, 2)]
    assert result.ledger_entries[0].material_id == m1.pk
    assert result.new_status == S.PROCESSING


def test_aggregated_overflow_reports_quantity_exceeded(two_item_order):
    order, _, b, _, _ = two_item_order
    with pytest.raises(QuantityExceeded) as exc:
        submit_progress(order.pk, AggregatedSubmission(pcs_finished=11))
    assert exc.value.line_item_id == b.pk
    assert _counts() == (0, 0, 0)


# ---------------------------------------------------------------------------
# Public links
# ---------------------------------------------------------------------------
def test_submission_through_order_link(single_item_order, manager):
    link = create_order_link(single_item_order.pk, user=manager)
    item = single_item_order.items.get()

    result = submit_progress(
        link.token,
        [ProductSubmission(line_item_id=item.pk, pcs_finished=2)],
        SubmissionMeta(worker_name="Ani"),
    )
    assert result.batch.order_link_id == link.pk
    assert result.batch.submitted_by is None
    assert result.batch.worker_name == "Ani"


def test_expired_or_replaced_link_rejected(single_item_order):
    item = single_item_order.items.get()
    old = create_order_link(single_item_order.pk)
    new = create_order_link(single_item_order.pk)

    with pytest.raises(OrderLinkNotFound):
        submit_progress(old.token, [ProductSubmission(line_item_id=item.pk, pcs_finished=1)])

    OrderLink.objects.filter(pk=new.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
    with pytest.raises(OrderLinkNotFound):
        submit_progress(new.token, [ProductSubmission(line_item_id=item.pk, pcs_finished=1)])
    assert _counts() == (0, 0, 0)


# ---------------------------------------------------------------------------
# Corrections
# ---------------------------------------------------------------------------
def test_reversal_reverts_completed_and_returns_fabric(single_item_order, fabric, manager):
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=4)])
    done = submit_progress(single_item_order.pk, [
        ProductSubmission(line_item_id=item.pk, pcs_finished=6, fabric_used=Decimal("3"))
    ])
    assert done.new_status == S.COMPLETED
    entry = done.entries[0]

    result = reverse_progress_entry(entry.pk, user=manager, reason="miscounted")

    correction = result.entries[0]
    assert correction.entry_kind == ProgressEntry.EntryKind.CORRECTION
    assert correction.pcs_finished == -6
    assert correction.corrects_id == entry.pk
    assert (result.previous_status, result.new_status) == (S.COMPLETED, S.PROCESSING)
    assert result.line_items[0].completed == 4

    refund = MaterialLedgerEntry.objects.get(source="adjustment")
    assert refund.quantity_delta == Decimal("3")
    assert refund.reference_number == f"PROG-{entry.pk}-REV"
    fabric.refresh_from_db()
    assert fabric.quantity_on_hand == Decimal("100")

    with pytest.raises(AlreadyReversed):
        reverse_progress_entry(entry.pk, user=manager)
    with pytest.raises(AlreadyReversed):
        reverse_progress_entry(correction.pk, user=manager)


def test_reversed_pieces_can_be_submitted_again(single_item_order):
    item = single_item_order.items.get()
    done = submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=10)])
    reverse_progress_entry(done.entries[0].pk)

    again = submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=10)])
    assert again.new_status == S.COMPLETED



@pytest.mark.parametrize(
    "status, error",
    [(S.CANCELLED, OrderCancelled), (S.SHIPPED, OrderNotAcceptingProgress), (S.DELIVERED, OrderNotAcceptingProgress)],
)
def test_reversal_rejected_on_closed_order(single_item_order, fabric, status, error):
    item = single_item_order.items.get()
    done = submit_progress(single_item_order.pk, [
        ProductSubmission(line_item_id=item.pk, pcs_finished=10, fabric_used=Decimal("2"))
    ])
    Order.objects.filter(pk=single_item_order.pk).update(status=status)

    with pytest.raises(error):
        reverse_progress_entry(done.entries[0].pk)
    assert ProgressEntry.objects.filter(entry_kind=ProgressEntry.EntryKind.CORRECTION).count() == 0
    assert not MaterialLedgerEntry.objects.filter(source="adjustment").exists()
    item.refresh_from_db()
    assert item.completed_qty == 10
    fabric.refresh_from_db()
    assert fabric.quantity_on_hand == Decimal("98")

def test_result_serializes(two_item_order):
    order, a, _, _, _ = two_item_order
    result = submit_progress(order.pk, [ProductSubmission(line_item_id=a.pk, pcs_finished=1, fabric_used=Decimal("0.5"))])
    payload = result.as_dict()
    assert payload["ok"] is True
    assert payload["entries"][0]["pcs_finished"] == 1
    assert Decimal(payload["ledger_entries"][0]["quantity_delta"]) == Decimal("-0.5")
    assert payload["order_completion"]["total_ordered"] == 10
