"""
Progress submission coordinator.

``submit_progress`` records finished pieces and fabric usage for an order in
one transaction: progress entries, consumption ledger rows, completion caches
and the derived order status either all commit or none do. Writers for the
same order are serialized by row locks on the order and its line items.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence

from django.conf import settings
from django.db import transaction

from inventory import ledger
from inventory.consumption import allocate_consumption, consumption_reference
from inventory.models import Material, MaterialLedgerEntry
from orders.links import resolve_order_link
from orders.models import Order, OrderItem
from orders.state_machine import CLOSED_FOR_PIECES, apply_progress_rules
from utils.exceptions import (
    AlreadyReversed,
    DomainValidationError,
    LineItemNotFound,
    MaterialNotFound,
    NegativeQuantity,
    OrderCancelled,
    OrderNotAcceptingProgress,
    OrderNotFound,
    ProgressEntryNotFound,
    QuantityExceeded,
)

from .completion import (
    LineItemCompletion,
    OrderCompletion,
    compute_line_item_completion,
    compute_order_completion,
    find_completion_drift,
    reconcile_order_completion,
    refresh_line_item_cache,
    refresh_order_cache,
)
from .models import ProgressBatch, ProgressEntry, ProgressPhoto
from .submissions import (
    AggregatedSubmission,
    PerProductSubmission,
    ProductSubmission,
    SubmissionMeta,
    normalize_submission,
)

logger = logging.getLogger(__name__)


def _max_photos() -> int:
    return int(getattr(settings, "KONVEKSI_MAX_PROGRESS_PHOTOS", 5))


def _allow_fabric_after_completion() -> bool:
    return bool(getattr(settings, "KONVEKSI_ALLOW_FABRIC_AFTER_COMPLETION", True))


@dataclass
class SubmissionResult:
    batch: ProgressBatch
    entries: List[ProgressEntry]
    ledger_entries: List[MaterialLedgerEntry]
    line_items: List[LineItemCompletion]
    order_completion: OrderCompletion
    previous_status: str
    new_status: str
    transition_reason: str = ""
    duplicate: bool = False
    status_changes: list = field(default_factory=list)

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status

    def as_dict(self) -> dict:
        return {
            "ok": True,
            "duplicate": self.duplicate,
            "batch_id": self.batch.pk,
            "order_id": self.batch.order_id,
            "entries": [
                {
                    "id": e.pk,
                    "line_item_id": e.line_item_id,
                    "entry_kind": e.entry_kind,
                    "pcs_finished": e.pcs_finished,
                    "fabric_used": str(e.fabric_used) if e.fabric_used is not None else None,
                    "quality_score": e.quality_score,
                }
                for e in self.entries
            ],
            "ledger_entries": [ledger.entry_as_dict(le) for le in self.ledger_entries],
            "line_items": [li.as_dict() for li in self.line_items],
            "order_completion": self.order_completion.as_dict(),
            "status_changed": self.status_changed,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "transition_reason": self.transition_reason,
        }


# ---------------------------------------------------------------------------
# Validation (no writes)
# ---------------------------------------------------------------------------
FABRIC_PLACES = Decimal("0.001")
FABRIC_LIMIT = Decimal("1e9")


def _to_decimal(value, field_name: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        d = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise DomainValidationError(field_name, f"not a number: {value!r}")
    if not d.is_finite():
        raise DomainValidationError(field_name, f"not a finite number: {value!r}")
    return d


def validate_rows(rows: Sequence[ProductSubmission]) -> None:
    """Shape and range checks that need no database access."""
    if not rows:
        raise DomainValidationError("submissions", "at least one entry is required")

    seen = set()
    max_photos = _max_photos()
    for idx, row in enumerate(rows):
        prefix = f"submissions[{idx}]"
        if row.line_item_id in seen:
            raise DomainValidationError(f"{prefix}.line_item_id", "line item appears more than once")
        seen.add(row.line_item_id)

        if isinstance(row.pcs_finished, bool) or not isinstance(row.pcs_finished, int):
            raise DomainValidationError(f"{prefix}.pcs_finished", "must be an integer")
        if row.pcs_finished < 0:
            raise DomainValidationError(f"{prefix}.pcs_finished", "must be zero or more")

        row.fabric_used = _to_decimal(row.fabric_used, f"{prefix}.fabric_used")
        if row.fabric_used is not None and row.fabric_used < 0:
            raise NegativeQuantity(f"{prefix}.fabric_used", row.fabric_used)
        if row.fabric_used is not None:
            if row.fabric_used >= FABRIC_LIMIT:
                raise DomainValidationError(f"{prefix}.fabric_used", "too large")
            # stored with three decimals; anything finer would drift from the ledger
            row.fabric_used = row.fabric_used.quantize(FABRIC_PLACES)

        if row.quality_score is not None and not (0 <= row.quality_score <= 100):
            raise DomainValidationError(f"{prefix}.quality_score", "must be between 0 and 100")

        if len(row.photos or []) > max_photos:
            raise DomainValidationError(f"{prefix}.photos", f"at most {max_photos} photos per entry")

        if row.pcs_finished == 0 and not row.fabric_used:
            raise DomainValidationError(prefix, "report finished pieces or fabric used")


def _lock_order(order_id) -> Order:
    order = Order.objects.select_for_update().filter(pk=order_id, is_active=True).first()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def _lock_line_items(order: Order) -> dict:
    qs = (
        OrderItem.objects.select_for_update()
        .filter(order=order)
        .select_related("product", "product__base_material")
        .order_by("id")
    )
    return {li.pk: li for li in qs}


def _lock_materials(material_ids) -> None:
    """Lock every material a batch will touch, lowest id first."""
    if material_ids:
        list(Material.objects.select_for_update().filter(pk__in=set(material_ids)).order_by("id"))


def _resolve_material_id(row: ProductSubmission, line_item: OrderItem) -> int:
    material_id = row.material_id or line_item.product.base_material_id
    if material_id is None:
        raise MaterialNotFound(f"base material of {line_item.product}")
    if not Material.objects.filter(pk=material_id).exists():
        raise MaterialNotFound(material_id)
    return material_id


def _check_quantities(rows, line_items: dict, completion: OrderCompletion) -> None:
    completed = {s.line_item_id: s.completed for s in completion.product_summaries}
    for row in rows:
        if row.pcs_finished <= 0:
            continue
        li = line_items[row.line_item_id]
        remaining = li.quantity - completed.get(li.pk, 0)
        if row.pcs_finished > remaining:
            raise QuantityExceeded(li.pk, max(remaining, 0), row.pcs_finished)


def _check_status(order: Order, rows) -> None:
    if order.status == Order.Status.CANCELLED:
        raise OrderCancelled(order.pk)
    if order.status not in CLOSED_FOR_PIECES:
        return
    if any(r.pcs_finished > 0 for r in rows):
        raise OrderNotAcceptingProgress(order.pk, order.status)
    if not _allow_fabric_after_completion():
        raise OrderNotAcceptingProgress(order.pk, order.status)


def _existing_result(batch: ProgressBatch) -> SubmissionResult:
    entries = list(batch.entries.order_by("id"))
    ledger_entries = list(
        MaterialLedgerEntry.objects.filter(progress_entry__batch=batch).order_by("id")
    )
    completion = compute_order_completion(batch.order_id)
    touched = {e.line_item_id for e in entries}
    status = Order.objects.values_list("status", flat=True).get(pk=batch.order_id)
    return SubmissionResult(
        batch=batch,
        entries=entries,
        ledger_entries=ledger_entries,
        line_items=[s for s in completion.product_summaries if s.line_item_id in touched],
        order_completion=completion,
        previous_status=status,
        new_status=status,
        duplicate=True,
    )


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------
def submit_progress(order_ref, submissions, meta: Optional[SubmissionMeta] = None) -> SubmissionResult:
    """
    Record a batch of per-line-item progress for one order.

    ``order_ref`` is an order id, or an order link token (str) for public
    submissions. ``submissions`` is a list of ``ProductSubmission`` rows or
    one of the ``PerProductSubmission``/``AggregatedSubmission`` payloads;
    aggregated payloads are spread over line items under the order lock.
    All checks run before the first write; any failure after that rolls the
    whole batch back.
    """
    meta = meta or SubmissionMeta()
    variant = submissions if isinstance(submissions, (PerProductSubmission, AggregatedSubmission)) else None
    rows = None if variant is not None else list(submissions)
    if rows is not None:
        validate_rows(rows)

    link = None
    if isinstance(order_ref, str):
        link = resolve_order_link(order_ref)
        order_id = link.order_id
    else:
        order_id = order_ref

    kind = ProgressBatch.Kind.AGGREGATED if isinstance(variant, AggregatedSubmission) else meta.kind
    if kind not in ProgressBatch.Kind.values:
        raise DomainValidationError("kind", f"unknown submission kind {kind!r}")
    client_reference = (meta.client_reference or "").strip() or None

    with transaction.atomic():
        order = _lock_order(order_id)

        if client_reference:
            existing = ProgressBatch.objects.filter(order=order, client_reference=client_reference).first()
            if existing is not None:
                logger.info("duplicate submission %s for order %s ignored", client_reference, order.order_number)
                return _existing_result(existing)

        if order.status == Order.Status.CANCELLED:
            raise OrderCancelled(order.pk)

        line_items = _lock_line_items(order)
        if find_completion_drift(order.pk):
            reconcile_order_completion(order, user=meta.user)
            line_items = _lock_line_items(order)

        if variant is not None:
            rows = normalize_submission(variant, list(line_items.values()))
            validate_rows(rows)
        for row in rows:
            if row.line_item_id not in line_items:
                raise LineItemNotFound(row.line_item_id, order.pk)

        completion = compute_order_completion(order.pk)
        _check_quantities(rows, line_items, completion)
        _check_status(order, rows)

        materials = {
            row.line_item_id: _resolve_material_id(row, line_items[row.line_item_id])
            for row in rows
            if row.fabric_used and row.fabric_used > 0
        }
        _lock_materials(materials.values())

        user = meta.user if getattr(meta.user, "is_authenticated", False) else None
        previous_status = order.status

        batch = ProgressBatch.objects.create(
            order=order,
            kind=kind,
            submitted_by=user,
            order_link=link,
            worker_name=meta.worker_name or "",
            note=meta.note or "",
            client_reference=client_reference,
        )

        entries, ledger_entries = [], []
        for row in rows:
            li = line_items[row.line_item_id]
            entry = ProgressEntry.objects.create(
                batch=batch,
                order=order,
                line_item=li,
                pcs_finished=row.pcs_finished,
                fabric_used=row.fabric_used,
                quality_score=row.quality_score,
                quality_notes=row.quality_notes or "",
                challenges=row.challenges or "",
                submitted_by=user,
            )
            ProgressPhoto.objects.bulk_create([
                ProgressPhoto(entry=entry, url=p.url, thumbnail_url=p.thumbnail_url or "", caption=p.caption or "")
                for p in row.photos or []
            ])
            entries.append(entry)

            if li.pk in materials:
                ledger_entries.append(
                    allocate_consumption(order.pk, li.pk, materials[li.pk], row.fabric_used, entry, user=user)
                )

        snapshots = [refresh_line_item_cache(line_items[row.line_item_id]) for row in rows]
        completion = refresh_order_cache(order)
        outcome = apply_progress_rules(order, completion.total_completed, completion.total_ordered, user=user)

    logger.info(
        "progress batch %s on %s: %s entries, %s ledger rows, %s/%s pcs, status %s -> %s",
        batch.pk, order.order_number, len(entries), len(ledger_entries),
        completion.total_completed, completion.total_ordered, previous_status, order.status,
    )
    return SubmissionResult(
        batch=batch,
        entries=entries,
        ledger_entries=ledger_entries,
        line_items=snapshots,
        order_completion=completion,
        previous_status=previous_status,
        new_status=order.status,
        transition_reason=outcome.reason,
        status_changes=outcome.changes,
    )


def reverse_progress_entry(entry_id, user=None, reason: str = "") -> SubmissionResult:
    """
    Cancel the effect of one progress entry with a compensating entry.

    Fabric consumed by the original entry is returned to stock with an
    ``adjustment`` ledger row referenced ``PROG-<id>-REV``.
    """
    entry = ProgressEntry.objects.filter(pk=entry_id).only("id", "order_id").first()
    if entry is None:
        raise ProgressEntryNotFound(entry_id)

    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=entry.order_id)
        if order.status == Order.Status.CANCELLED:
            raise OrderCancelled(order.pk)
        if order.status in (Order.Status.SHIPPED, Order.Status.DELIVERED):
            raise OrderNotAcceptingProgress(order.pk, order.status)
        line_items = _lock_line_items(order)
        entry = ProgressEntry.objects.select_related("batch").get(pk=entry_id)
        if entry.is_correction or ProgressEntry.objects.filter(corrects=entry).exists():
            raise AlreadyReversed(entry.pk)

        user = user if getattr(user, "is_authenticated", False) else None
        previous_status = order.status
        li = line_items[entry.line_item_id]

        batch = ProgressBatch.objects.create(
            order=order,
            kind=entry.batch.kind,
            submitted_by=user,
            note=reason or f"Correction of progress entry {entry.pk}",
        )
        correction = ProgressEntry.objects.create(
            batch=batch,
            order=order,
            line_item=li,
            entry_kind=ProgressEntry.EntryKind.CORRECTION,
            corrects=entry,
            pcs_finished=-entry.pcs_finished,
            quality_notes=reason or "",
            submitted_by=user,
        )

        ledger_entries = []
        consumed = MaterialLedgerEntry.objects.filter(
            progress_entry=entry, source=MaterialLedgerEntry.Source.PRODUCTION
        ).order_by("id")
        _lock_materials([used.material_id for used in consumed])
        for used in consumed:
            ledger_entries.append(ledger.append_entry(
                used.material_id,
                -used.quantity_delta,
                MaterialLedgerEntry.Source.ADJUSTMENT,
                order=order,
                line_item=li,
                progress_entry=correction,
                unit_price=used.unit_price,
                reference_number=f"{consumption_reference(entry)}-REV",
                notes=reason or f"Reversal of {consumption_reference(entry)}",
                user=user,
            ))

        snapshot = refresh_line_item_cache(li)
        completion = refresh_order_cache(order)
        outcome = apply_progress_rules(order, completion.total_completed, completion.total_ordered, user=user)

    logger.info(
        "progress entry %s reversed by %s on %s (%s pcs), status %s -> %s",
        entry.pk, correction.pk, order.order_number, entry.pcs_finished, previous_status, order.status,
    )
    return SubmissionResult(
        batch=batch,
        entries=[correction],
        ledger_entries=ledger_entries,
        line_items=[snapshot],
        order_completion=completion,
        previous_status=previous_status,
        new_status=order.status,
        transition_reason=outcome.reason,
        status_changes=outcome.changes,
    )


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------
def get_order_completion_summary(order_id) -> OrderCompletion:
    return compute_order_completion(order_id)


def get_line_item_completion_status(order_id) -> List[LineItemCompletion]:
    return compute_order_completion(order_id).product_summaries


def get_line_item_completion(order_id, line_item_id) -> LineItemCompletion:
    if not OrderItem.objects.filter(pk=line_item_id, order_id=order_id).exists():
        raise LineItemNotFound(line_item_id, order_id)
    return compute_line_item_completion(line_item_id)
