# -*- coding: utf-8 -*-
"""JSON and XLSX views for material stock, the ledger and purchases."""
import logging

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_POST

from utils.http import json_errors, role_required, read_json
from utils.xlsx import build_table_response

from . import ledger
from .purchasing import set_purchase_status

logger = logging.getLogger(__name__)

LEDGER_FILTER_KEYS = ("source", "direction", "order_id", "reference", "date_from", "date_to")


def _ledger_filters(request) -> dict:
    return {k: request.GET.get(k, "").strip() for k in LEDGER_FILTER_KEYS if request.GET.get(k, "").strip()}


@require_GET
@login_required
@json_errors
def material_stock(request, pk: int):
    """Stock on hand from the ledger, next to the cached figure."""
    material = ledger.get_material(pk)
    on_hand = ledger.get_material_stock_on_hand(pk)
    return JsonResponse({
        "ok": True,
        "material_id": material.pk,
        "name": material.name,
        "unit": material.unit,
        "stock_on_hand": str(on_hand),
        "cached_quantity_on_hand": str(material.quantity_on_hand),
        "safety_stock": str(material.safety_stock),
        "restock_priority": ledger.restock_priority(material),
    })


@require_GET
@login_required
@json_errors
def material_ledger(request, pk: int):
    qs = ledger.list_material_ledger(pk, _ledger_filters(request))
    try:
        limit = max(1, min(int(request.GET.get("limit", 200)), 1000))
    except (TypeError, ValueError):
        limit = 200
    rows = [ledger.entry_as_dict(e) for e in qs[:limit]]
    return JsonResponse({"ok": True, "material_id": pk, "count": qs.count(), "results": rows})


@require_GET
@login_required
@role_required("manager", "purchasing")
@json_errors
def material_ledger_xlsx(request, pk: int):
    """Download a material's ledger as an XLSX table."""
    material = ledger.get_material(pk)
    qs = ledger.list_material_ledger(pk, _ledger_filters(request))
    headers = [
        "Date", "Movement", "Quantity", "Source", "Reference", "Order",
        "Unit price", "Total value", "Notes", "Recorded by",
    ]
    rows = [
        [
            e.created_at,
            "IN" if e.quantity_delta > 0 else "OUT",
            e.quantity_delta,
            e.get_source_display(),
            e.reference_number,
            e.order.order_number if e.order_id else "",
            e.unit_price,
            e.total_value,
            e.notes,
            getattr(e.created_by, "username", ""),
        ]
        for e in qs
    ]
    stamp = timezone.localtime(timezone.now()).strftime("%Y%m%d-%H%M")
    return build_table_response(
        filename=f"ledger-{material.pk}-{stamp}.xlsx",
        sheet_title="Ledger",
        report_title=f"Material ledger: {material.name} ({material.unit})",
        headers=headers,
        rows=rows,
        column_widths=[18, 10, 12, 14, 20, 22, 12, 14, 40, 16],
        table_name="MaterialLedger",
    )


@require_GET
@login_required
def restock_alerts(request):
    alerts = ledger.list_restock_alerts()
    return JsonResponse({"ok": True, "count": len(alerts), "results": alerts})


@require_POST
@login_required
@role_required("manager", "purchasing")
@json_errors
def purchase_status(request, pk: int):
    """Change a purchase's status; receipts and their reversal move stock."""
    data = read_json(request)
    purchase, entry = set_purchase_status(
        pk,
        (data.get("status") or "").strip(),
        user=request.user,
        note=(data.get("note") or "").strip(),
    )
    return JsonResponse({
        "ok": True,
        "purchase_id": purchase.pk,
        "status": purchase.status,
        "ledger_entry": ledger.entry_as_dict(entry) if entry is not None else None,
        "material_stock_on_hand": str(ledger.get_material_stock_on_hand(purchase.material_id)),
    })
