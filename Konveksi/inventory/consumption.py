"""Consumption allocator: turns reported fabric usage into outbound ledger rows."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction

from utils.exceptions import LineItemNotFound, NegativeQuantity

from . import ledger
from .models import MaterialLedgerEntry

logger = logging.getLogger(__name__)


def consumption_reference(progress_entry) -> str:
    return f"PROG-{progress_entry.pk}"


def allocate_consumption(order_id, line_item_id, material_id, quantity_used, progress_entry, user=None):
    """
    Record ``quantity_used`` of ``material_id`` as consumed by one progress entry.

    Writes a single negative production entry referenced ``PROG-<entry id>``.
    Calling again for the same entry and material returns the existing row.
    Entries sharing a material are never merged.
    """
    from orders.models import OrderItem

    try:
        qty = Decimal(str(quantity_used))
    except (InvalidOperation, TypeError, ValueError):
        raise NegativeQuantity("fabric_used", quantity_used)
    if qty <= 0:
        raise NegativeQuantity("fabric_used", quantity_used)

    reference = consumption_reference(progress_entry)

    with transaction.atomic():
        material = ledger.get_material(material_id, lock=True)
        existing = ledger.find_entry(material.pk, reference)
        if existing is not None:
            logger.info("consumption %s for material %s already recorded (entry %s)", reference, material.pk, existing.pk)
            return existing

        line_item = (
            OrderItem.objects
            .select_related("order", "product")
            .filter(pk=line_item_id, order_id=order_id)
            .first()
        )
        if line_item is None:
            raise LineItemNotFound(line_item_id, order_id)

        entry = ledger.append_entry(
            material,
            -qty,
            MaterialLedgerEntry.Source.PRODUCTION,
            order=line_item.order,
            line_item=line_item,
            progress_entry=progress_entry,
            unit_price=material.price,
            reference_number=reference,
            notes=f"Used for {line_item.product} on {line_item.order.order_number}",
            user=user,
        )
    return entry
