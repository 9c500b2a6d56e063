"""
JSON ENDPOINT TESTS
Status codes, payloads and role checks for the HTTP surface.
"""
from decimal import Decimal

import pytest
from django.urls import reverse

from inventory.models import MaterialLedgerEntry, PurchaseLog
from orders.links import create_order_link
from orders.models import Order
from production.models import ProgressEntry
from production.services import submit_progress
from production.submissions import ProductSubmission
from utils.xlsx import XLSX_CONTENT_TYPE

pytestmark = pytest.mark.django_db

S = Order.Status


def _post(client, url, data=None):
    return client.post(url, data or {}, content_type="application/json")


# ---------------------------------------------------------------------------
# Progress submission
# ---------------------------------------------------------------------------
def test_submit_progress_created(tailor_client, single_item_order, tailor):
    item = single_item_order.items.get()
    url = reverse("production:submit_progress", args=[single_item_order.pk])

    resp = _post(tailor_client, url, {"items": [{"line_item_id": item.pk, "pcs_finished": 4, "fabric_used": "1.5"}]})

    assert resp.status_code == 201
    body = resp.json()
    assert body["ok"] is True
    assert body["new_status"] == S.PROCESSING
    assert body["status_changed"] is True
    assert body["line_items"][0]["percentage"] == 40
    entry = ProgressEntry.objects.get()
    assert entry.submitted_by == tailor
    assert entry.batch.worker_name == "Siti"


def test_submit_progress_overflow_is_conflict(tailor_client, single_item_order):
    item = single_item_order.items.get()
    url = reverse("production:submit_progress", args=[single_item_order.pk])

    resp = _post(tailor_client, url, {"items": [{"line_item_id": item.pk, "pcs_finished": 11}]})

    assert resp.status_code == 409
    body = resp.json()
    assert body["ok"] is False
    assert body["error"] == "quantity_exceeded"
    assert body["remaining"] == 10


def test_submit_progress_validation_error(tailor_client, single_item_order):
    item = single_item_order.items.get()
    url = reverse("production:submit_progress", args=[single_item_order.pk])

    resp = _post(tailor_client, url, {"items": [{"line_item_id": item.pk, "pcs_finished": 1, "quality_score": 150}]})

    assert resp.status_code == 400
    assert resp.json()["field"] == "items[0].quality_score"


def test_submit_progress_invalid_json(tailor_client, single_item_order):
    url = reverse("production:submit_progress", args=[single_item_order.pk])
    resp = tailor_client.post(url, "{not json", content_type="application/json")
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


def test_submit_progress_unknown_order(tailor_client):
    resp = _post(tailor_client, reverse("production:submit_progress", args=[9999]), {"items": [{"line_item_id": 1, "pcs_finished": 1}]})
    assert resp.status_code == 404
    assert resp.json()["error"] == "order_not_found"


def test_submit_progress_cancelled(tailor_client, make_product, make_order):
    order = make_order([(make_product(), 3)], status=S.CANCELLED)
    resp = _post(
        tailor_client,
        reverse("production:submit_progress", args=[order.pk]),
        {"items": [{"line_item_id": order.items.get().pk, "pcs_finished": 1}]},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "order_cancelled"


def test_duplicate_client_reference_returns_200(tailor_client, single_item_order):
    item = single_item_order.items.get()
    url = reverse("production:submit_progress", args=[single_item_order.pk])
    payload = {"client_reference": "sync-1", "items": [{"line_item_id": item.pk, "pcs_finished": 2}]}

    assert _post(tailor_client, url, payload).status_code == 201
    resp = _post(tailor_client, url, payload)
    assert resp.status_code == 200
    assert resp.json()["duplicate"] is True
    assert ProgressEntry.objects.count() == 1


def test_aggregated_submission_over_http(tailor_client, single_item_order):
    url = reverse("production:submit_progress", args=[single_item_order.pk])
    resp = _post(tailor_client, url, {"kind": "aggregated", "pcs_finished": 10, "fabric_used": "4"})
    assert resp.status_code == 201
    assert resp.json()["new_status"] == S.COMPLETED


def test_submit_requires_login(client, single_item_order):
    resp = _post(client, reverse("production:submit_progress", args=[single_item_order.pk]), {"items": []})
    assert resp.status_code == 302


def test_submit_requires_post(tailor_client, single_item_order):
    resp = tailor_client.get(reverse("production:submit_progress", args=[single_item_order.pk]))
    assert resp.status_code == 405


def test_public_link_submission(client, single_item_order):
    link = create_order_link(single_item_order.pk)
    item = single_item_order.items.get()

    resp = _post(
        client,
        reverse("production:link_progress", args=[link.token]),
        {"worker_name": "Ani", "items": [{"line_item_id": item.pk, "pcs_finished": 3}]},
    )

    assert resp.status_code == 201
    assert ProgressEntry.objects.get().batch.worker_name == "Ani"

    bad = _post(client, reverse("production:link_progress", args=["nope"]), {"items": [{"line_item_id": item.pk, "pcs_finished": 1}]})
    assert bad.status_code == 404
    assert bad.json()["error"] == "order_link_not_found"


# ---------------------------------------------------------------------------
# Completion read side
# ---------------------------------------------------------------------------
def test_order_completion_and_line_items(tailor_client, single_item_order):
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=5)])

    summary = tailor_client.get(reverse("production:order_completion", args=[single_item_order.pk])).json()
    assert summary["total_completed"] == 5
    assert summary["percentage"] == 50
    assert summary["is_order_complete"] is False

    rows = tailor_client.get(reverse("production:line_items", args=[single_item_order.pk])).json()["results"]
    assert rows == [summary["product_summaries"][0]]
    assert rows[0]["remaining"] == 5


def test_order_completion_unknown_order(tailor_client):
    resp = tailor_client.get(reverse("production:order_completion", args=[424242]))
    assert resp.status_code == 404


def test_link_completion(client, single_item_order):
    link = create_order_link(single_item_order.pk)
    body = client.get(reverse("production:link_completion", args=[link.token])).json()
    assert body["order_number"] == single_item_order.order_number
    assert body["total_ordered"] == 10


# ---------------------------------------------------------------------------
# Corrections
# ---------------------------------------------------------------------------
def test_reverse_entry_manager_only(manager_client, single_item_order):
    item = single_item_order.items.get()
    result = submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=10)])
    url = reverse("production:reverse_entry", args=[result.entries[0].pk])

    resp = _post(manager_client, url, {"reason": "double counted"})
    assert resp.status_code == 201
    assert resp.json()["new_status"] == S.PROCESSING

    again = _post(manager_client, url)
    assert again.status_code == 409
    assert again.json()["error"] == "already_reversed"

    missing = _post(manager_client, reverse("production:reverse_entry", args=[99999]))
    assert missing.status_code == 404


def test_reverse_entry_forbidden_for_tailor(tailor_client, single_item_order):
    item = single_item_order.items.get()
    result = submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=1)])
    resp = _post(tailor_client, reverse("production:reverse_entry", args=[result.entries[0].pk]))
    assert resp.status_code == 403
    assert resp.json()["error"] == "forbidden"


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
def test_change_status(manager_client, single_item_order):
    url = reverse("orders:change_status", args=[single_item_order.pk])

    resp = _post(manager_client, url, {"status": S.CONFIRMED})
    assert resp.status_code == 200
    assert resp.json()["new_status"] == S.CONFIRMED

    illegal = _post(manager_client, url, {"status": S.DELIVERED})
    assert illegal.status_code == 409
    assert illegal.json()["error"] == "illegal_transition"

    derived = _post(manager_client, url, {"status": S.COMPLETED})
    assert derived.status_code == 400


def test_change_status_forbidden_for_tailor(tailor_client, single_item_order):
    resp = _post(tailor_client, reverse("orders:change_status", args=[single_item_order.pk]), {"status": S.CANCELLED})
    assert resp.status_code == 403
    assert Order.objects.get(pk=single_item_order.pk).status == S.CREATED


def test_timeline(manager_client, single_item_order):
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=10)])

    body = manager_client.get(reverse("orders:timeline", args=[single_item_order.pk])).json()
    assert body["status"] == S.COMPLETED
    assert [(r["old_status"], r["new_status"]) for r in body["results"]] == [
        (S.CREATED, S.PROCESSING),
        (S.PROCESSING, S.COMPLETED),
    ]
    assert S.SHIPPED in body["allowed_transitions"]


def test_create_link_and_public_pages(manager_client, client, single_item_order):
    resp = _post(manager_client, reverse("orders:create_link", args=[single_item_order.pk]), {"ttl_days": 7})
    assert resp.status_code == 201
    body = resp.json()
    assert body["expires_at"] is not None
    assert body["progress_url"].endswith(f"/production/link/{body['token']}/progress/")

    summary = client.get(reverse("orders:public_order_summary", args=[body["token"]]))
    assert summary.status_code == 200
    assert summary.json()["customer_name"] == "Toko Maju"

    qr = client.get(reverse("orders:qr_image", args=[body["token"]]))
    assert qr.status_code == 200
    assert qr["Content-Type"].startswith("image/svg+xml")
    assert b"<svg" in qr.content


def test_create_link_bad_ttl(manager_client, single_item_order):
    resp = _post(manager_client, reverse("orders:create_link", args=[single_item_order.pk]), {"ttl_days": "soon"})
    assert resp.status_code == 400


def test_public_summary_unknown_token(client):
    resp = client.get(reverse("orders:public_order_summary", args=["missing"]))
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
def test_material_stock_and_ledger(tailor_client, fabric, single_item_order):
    item = single_item_order.items.get()
    submit_progress(single_item_order.pk, [ProductSubmission(line_item_id=item.pk, pcs_finished=1, fabric_used=Decimal("2.5"))])

    stock = tailor_client.get(reverse("inventory:material_stock", args=[fabric.pk])).json()
    assert Decimal(stock["stock_on_hand"]) == Decimal("97.5")
    assert Decimal(stock["cached_quantity_on_hand"]) == Decimal("97.5")

    ledger = tailor_client.get(reverse("inventory:material_ledger", args=[fabric.pk]), {"direction": "out"}).json()
    assert ledger["count"] == 1
    assert ledger["results"][0]["source"] == "production"


def test_material_ledger_xlsx(manager_client, tailor_client, fabric):
    url = reverse("inventory:material_ledger_xlsx", args=[fabric.pk])
    resp = manager_client.get(url)
    assert resp.status_code == 200
    assert resp["Content-Type"] == XLSX_CONTENT_TYPE
    assert resp.content[:2] == b"PK"

    assert tailor_client.get(url).status_code == 403
    assert manager_client.get(url).status_code == 200



@pytest.mark.parametrize("params, field", [({"date_from": "not-a-date"}, "date_from"), ({"order_id": "abc"}, "order_id")])
def test_material_ledger_malformed_filters(manager_client, fabric, params, field):
    for name in ("inventory:material_ledger", "inventory:material_ledger_xlsx"):
        resp = manager_client.get(reverse(name, args=[fabric.pk]), params)
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"
        assert resp.json()["field"] == field

def test_unknown_material(tailor_client):
    resp = tailor_client.get(reverse("inventory:material_stock", args=[31337]))
    assert resp.status_code == 404
    assert resp.json()["error"] == "material_not_found"


def test_restock_alerts(tailor_client, make_material):
    make_material(name="Rib", stock="1", safety_stock="10")
    make_material(name="Drill", stock="50", safety_stock="10")
    body = tailor_client.get(reverse("inventory:restock_alerts")).json()
    assert [a["name"] for a in body["results"]] == ["Rib"]
    assert body["results"][0]["priority"] == "high"


def test_purchase_status(django_user_model, client, fabric):
    buyer = django_user_model.objects.create_user(username="buyer", password="pw", role="purchasing")
    client.force_login(buyer)
    purchase = PurchaseLog.objects.create(material=fabric, quantity=Decimal("20"))

    resp = _post(client, reverse("inventory:purchase_status", args=[purchase.pk]), {"status": "received"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["ledger_entry"]["reference_number"] == f"PUR-{purchase.pk}"
    assert Decimal(body["material_stock_on_hand"]) == Decimal("120")


def test_purchase_status_forbidden_for_tailor(tailor_client, fabric):
    purchase = PurchaseLog.objects.create(material=fabric, quantity=Decimal("20"))
    resp = _post(tailor_client, reverse("inventory:purchase_status", args=[purchase.pk]), {"status": "received"})
    assert resp.status_code == 403
    assert not MaterialLedgerEntry.objects.filter(purchase=purchase).exists()


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
def test_reconcile_endpoint(manager_client, tailor_client, single_item_order):
    Order.objects.filter(pk=single_item_order.pk).update(completed_pcs=7)
    url = reverse("maintenance:reconcile")

    dry = _post(manager_client, url, {"dry_run": True}).json()
    assert dry["fixed"] is False
    assert dry["drift_count"] == 1
    assert Order.objects.get(pk=single_item_order.pk).completed_pcs == 7

    fixed = _post(manager_client, url).json()
    assert fixed["fixed"] is True
    assert Order.objects.get(pk=single_item_order.pk).completed_pcs == 0

    assert _post(tailor_client, url).status_code == 403
