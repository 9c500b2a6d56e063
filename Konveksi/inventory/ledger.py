"""Material ledger: append-only stock movements and the on-hand cache.

Stock on hand is always derivable as the sum of a material's ledger deltas.
``Material.quantity_on_hand`` is kept in step with an ``F()`` increment in
the same transaction as the append, and rebuilt by ``reconcile_material_stock``.
"""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F, Sum

from utils.exceptions import ConsistencyError, DomainValidationError, MaterialNotFound

from .forms import clean_ledger_filters
from .models import Material, MaterialLedgerEntry

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _as_decimal(value, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise DomainValidationError(field, f"not a number: {value!r}")


def _stock_tolerance() -> Decimal:
    return Decimal(str(getattr(settings, "KONVEKSI_STOCK_TOLERANCE", "0.001")))


def get_material(material_ref, *, lock: bool = False) -> Material:
    qs = Material.objects.select_for_update() if lock else Material.objects.all()
    try:
        return qs.get(pk=material_ref)
    except (Material.DoesNotExist, ValueError, TypeError):
        raise MaterialNotFound(material_ref)


def append_entry(
    material,
    quantity_delta,
    source: str,
    *,
    order=None,
    line_item=None,
    progress_entry=None,
    purchase=None,
    unit_price=None,
    reference_number: str = "",
    notes: str = "",
    user=None,
) -> MaterialLedgerEntry:
    """
    Append one ledger row and bump the material cache by the same delta.

    ``material`` may be a Material or its id. A zero delta is rejected; the
    sign carries the direction.
    """
    delta = _as_decimal(quantity_delta, "quantity_delta")
    if delta == ZERO:
        raise DomainValidationError("quantity_delta", "must not be zero")
    if source not in MaterialLedgerEntry.Source.values:
        raise DomainValidationError("source", f"unknown source {source!r}")

    material_id = material.pk if isinstance(material, Material) else material

    with transaction.atomic():
        mat = get_material(material_id, lock=True)
        entry = MaterialLedgerEntry.objects.create(
            material=mat,
            quantity_delta=delta,
            source=source,
            order=order,
            line_item=line_item,
            progress_entry=progress_entry,
            purchase=purchase,
            unit_price=unit_price,
            reference_number=reference_number or "",
            notes=notes or "",
            created_by=user if getattr(user, "is_authenticated", False) else None,
        )
        Material.objects.filter(pk=mat.pk).update(quantity_on_hand=F("quantity_on_hand") + delta)
        mat.refresh_from_db(fields=["quantity_on_hand"])

    logger.info(
        "ledger append material=%s delta=%s source=%s ref=%s on_hand=%s",
        mat.pk, delta, source, reference_number, mat.quantity_on_hand,
    )
    if mat.quantity_on_hand < ZERO:
        logger.warning("material %s (%s) is below zero: %s", mat.pk, mat.name, mat.quantity_on_hand)
    elif delta < ZERO and mat.is_below_safety_stock():
        logger.warning(
            "material %s (%s) at or below safety stock: %s <= %s",
            mat.pk, mat.name, mat.quantity_on_hand, mat.safety_stock,
        )
    return entry


def find_entry(material_id, reference_number: str) -> Optional[MaterialLedgerEntry]:
    if not reference_number:
        return None
    return (
        MaterialLedgerEntry.objects
        .filter(material_id=material_id, reference_number=reference_number)
        .order_by("id")
        .first()
    )


def get_material_stock_on_hand(material_id) -> Decimal:
    """Sum of the material's ledger deltas (not the cache)."""
    if not Material.objects.filter(pk=material_id).exists():
        raise MaterialNotFound(material_id)
    total = MaterialLedgerEntry.objects.filter(material_id=material_id).aggregate(
        s=Sum("quantity_delta")
    )["s"]
    return total if total is not None else ZERO


def list_material_ledger(material_id, filters: Optional[dict] = None):
    """
    Ledger rows for a material in chronological order.

    Supported filters: ``source``, ``direction`` (``in``/``out``), ``order_id``,
    ``reference``, ``date_from``, ``date_to`` (dates, inclusive).
    """
    if not Material.objects.filter(pk=material_id).exists():
        raise MaterialNotFound(material_id)
    filters = clean_ledger_filters(filters)
    qs = (
        MaterialLedgerEntry.objects
        .filter(material_id=material_id)
        .select_related("order", "line_item", "created_by")
        .order_by("created_at", "id")
    )
    if filters.get("source"):
        qs = qs.filter(source=filters["source"])
    if filters.get("direction") == "in":
        qs = qs.filter(quantity_delta__gt=0)
    elif filters.get("direction") == "out":
        qs = qs.filter(quantity_delta__lt=0)
    if filters.get("order_id"):
        qs = qs.filter(order_id=filters["order_id"])
    if filters.get("reference"):
        qs = qs.filter(reference_number__icontains=filters["reference"])
    if filters.get("date_from"):
        qs = qs.filter(created_at__date__gte=filters["date_from"])
    if filters.get("date_to"):
        qs = qs.filter(created_at__date__lte=filters["date_to"])
    return qs


def entry_as_dict(entry: MaterialLedgerEntry) -> dict:
    return {
        "id": entry.id,
        "material_id": entry.material_id,
        "quantity_delta": str(entry.quantity_delta),
        "movement_type": entry.movement_type,
        "source": entry.source,
        "order_id": entry.order_id,
        "line_item_id": entry.line_item_id,
        "progress_entry_id": entry.progress_entry_id,
        "purchase_id": entry.purchase_id,
        "unit_price": str(entry.unit_price) if entry.unit_price is not None else None,
        "total_value": str(entry.total_value) if entry.total_value is not None else None,
        "reference_number": entry.reference_number,
        "notes": entry.notes,
        "created_by": getattr(entry.created_by, "username", None),
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


# ---------------------------
# Reconciliation
# ---------------------------
def find_stock_drift(materials: Optional[Iterable[Material]] = None) -> list[ConsistencyError]:
    """Return one ConsistencyError per material whose cache disagrees with its ledger."""
    tolerance = _stock_tolerance()
    qs = materials if materials is not None else Material.objects.all()
    sums = dict(
        MaterialLedgerEntry.objects.order_by().values_list("material_id").annotate(s=Sum("quantity_delta"))
    )
    drift = []
    for mat in qs:
        expected = sums.get(mat.pk) or ZERO
        if abs(expected - (mat.quantity_on_hand or ZERO)) > tolerance:
            drift.append(ConsistencyError(f"material {mat.pk} quantity_on_hand", expected, mat.quantity_on_hand))
    return drift


def reconcile_material_stock(material) -> Optional[ConsistencyError]:
    """
    Rewrite a material's cache from its ledger.

    Returns the detected ConsistencyError (already logged) or None when the
    cache was within tolerance.
    """
    material_id = material.pk if isinstance(material, Material) else material
    with transaction.atomic():
        mat = get_material(material_id, lock=True)
        expected = MaterialLedgerEntry.objects.filter(material=mat).aggregate(
            s=Sum("quantity_delta")
        )["s"] or ZERO
        if abs(expected - mat.quantity_on_hand) <= _stock_tolerance():
            return None
        err = ConsistencyError(f"material {mat.pk} quantity_on_hand", expected, mat.quantity_on_hand)
        logger.error("stock drift detected: %s", err.detail)
        Material.objects.filter(pk=mat.pk).update(quantity_on_hand=expected)
    return err


# ---------------------------
# Restock alerts
# ---------------------------
def restock_priority(material: Material) -> Optional[str]:
    """
    Priority of restocking a material, or None when stock is comfortable.

    critical: nothing left; high: at or under half the safety stock;
    medium: at or under 80%; low: at or under the safety stock.
    """
    qty = material.quantity_on_hand or ZERO
    safety = material.safety_stock or ZERO
    if qty <= ZERO:
        return "critical"
    if safety <= ZERO or qty > safety:
        return None
    if qty <= safety * Decimal("0.5"):
        return "high"
    if qty <= safety * Decimal("0.8"):
        return "medium"
    return "low"


PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def list_restock_alerts() -> list[dict]:
    alerts = []
    for mat in Material.objects.all():
        priority = restock_priority(mat)
        if priority is None:
            continue
        shortfall = max(mat.safety_stock - mat.quantity_on_hand, ZERO)
        alerts.append({
            "material_id": mat.pk,
            "name": mat.name,
            "unit": mat.unit,
            "quantity_on_hand": str(mat.quantity_on_hand),
            "safety_stock": str(mat.safety_stock),
            "shortfall": str(shortfall),
            "priority": priority,
        })
    alerts.sort(key=lambda a: (PRIORITY_ORDER[a["priority"]], a["name"]))
    return alerts


def record_manual_movement(material, quantity_delta, *, notes: str = "", reference_number: str = "", user=None):
    """Stock-take or manual in/out movement entered by staff."""
    return append_entry(
        material,
        quantity_delta,
        MaterialLedgerEntry.Source.MANUAL,
        reference_number=reference_number,
        notes=notes,
        user=user,
    )
