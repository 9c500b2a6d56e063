"""Purchase-driven replenishment.

A purchase contributes stock only while it is ``received``. Moving into
``received`` appends an inbound purchase entry; moving out of it appends a
compensating outbound entry. The ledger itself is never edited.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from utils.exceptions import DomainValidationError, PurchaseNotFound

from . import ledger
from .models import MaterialLedgerEntry, PurchaseLog

logger = logging.getLogger(__name__)


def _purchase_net(purchase: PurchaseLog):
    entries = MaterialLedgerEntry.objects.filter(
        purchase=purchase, source=MaterialLedgerEntry.Source.PURCHASE
    )
    receipts = entries.filter(quantity_delta__gt=0).count()
    reversals = entries.filter(quantity_delta__lt=0).count()
    return receipts, reversals


def _suffix(base: str, n: int) -> str:
    return base if n == 0 else f"{base}-{n + 1}"


def set_purchase_status(purchase_id, new_status: str, user=None, note: str = ""):
    """
    Move a purchase to ``new_status`` and keep the ledger in step.

    Returns ``(purchase, ledger_entry_or_None)``.
    """
    if new_status not in PurchaseLog.Status.values:
        raise DomainValidationError("status", f"unknown purchase status {new_status!r}")

    with transaction.atomic():
        try:
            purchase = PurchaseLog.objects.select_for_update().select_related("material").get(pk=purchase_id)
        except (PurchaseLog.DoesNotExist, ValueError, TypeError):
            raise PurchaseNotFound(purchase_id)

        old_status = purchase.status
        if old_status == new_status:
            return purchase, None

        entry = None
        receipts, reversals = _purchase_net(purchase)
        base_ref = purchase.reference_number
        if new_status == PurchaseLog.Status.RECEIVED and receipts == reversals:
            entry = ledger.append_entry(
                purchase.material,
                purchase.quantity,
                MaterialLedgerEntry.Source.PURCHASE,
                purchase=purchase,
                unit_price=purchase.unit_price,
                reference_number=_suffix(base_ref, receipts),
                notes=note or f"Received from {purchase.supplier or 'supplier'}",
                user=user,
            )
            purchase.received_at = timezone.now()
        elif old_status == PurchaseLog.Status.RECEIVED and receipts > reversals:
            entry = ledger.append_entry(
                purchase.material,
                -purchase.quantity,
                MaterialLedgerEntry.Source.PURCHASE,
                purchase=purchase,
                unit_price=purchase.unit_price,
                reference_number=_suffix(f"{base_ref}-REV", reversals),
                notes=note or f"Purchase status changed to {new_status}",
                user=user,
            )
            purchase.received_at = None

        purchase.status = new_status
        purchase.save(update_fields=["status", "received_at", "updated_at"])

    logger.info("purchase %s status %s -> %s (ledger entry %s)", purchase.pk, old_status, new_status, getattr(entry, "pk", None))
    return purchase, entry
