import logging

from django.contrib.auth.decorators import login_required
from django.http import HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.urls import reverse
from django.views.decorators.http import require_GET, require_POST

from production.services import get_order_completion_summary
from utils.http import json_errors, manager_required, read_json

from .links import create_order_link, render_qr_svg, resolve_order_link
from .models import Order
from .state_machine import allowed_manual_targets, order_timeline, transition_order

logger = logging.getLogger(__name__)


def _link_payload(request, link) -> dict:
    return {
        "token": link.token,
        "expires_at": link.expires_at.isoformat() if link.expires_at else None,
        "progress_url": request.build_absolute_uri(reverse("production:link_progress", args=[link.token])),
        "public_url": request.build_absolute_uri(reverse("orders:public_order_summary", args=[link.token])),
        "qr_url": request.build_absolute_uri(reverse("orders:qr_image", args=[link.token])),
    }


@require_POST
@login_required
@manager_required
@json_errors
def change_status(request, pk: int):
    """Manual status change (confirm, need material, ship, deliver, cancel)."""
    data = read_json(request)
    outcome = transition_order(
        pk,
        (data.get("status") or "").strip(),
        user=request.user,
        reason=(data.get("reason") or "").strip(),
    )
    return JsonResponse({
        "ok": True,
        "order_id": pk,
        "previous_status": outcome.previous_status,
        "new_status": outcome.new_status,
        "reason": outcome.reason,
    })


@require_POST
@login_required
@manager_required
@json_errors
def create_link(request, pk: int):
    data = read_json(request)
    ttl = data.get("ttl_days")
    try:
        ttl = int(ttl) if ttl not in (None, "") else None
    except (TypeError, ValueError):
        return JsonResponse({"ok": False, "error": "validation_error", "field": "ttl_days"}, status=400)
    link = create_order_link(pk, user=request.user, ttl_days=ttl)
    return JsonResponse({"ok": True, "order_id": pk, **_link_payload(request, link)}, status=201)


@require_GET
@login_required
def timeline(request, pk: int):
    order = get_object_or_404(Order, pk=pk)
    return JsonResponse({
        "ok": True,
        "order_id": order.pk,
        "order_number": order.order_number,
        "status": order.status,
        "allowed_transitions": allowed_manual_targets(order.status),
        "results": order_timeline(order),
    })


@require_GET
@json_errors
def public_order_summary(request, token: str):
    """Read-only order summary for QR scans; no login required."""
    link = resolve_order_link(token)
    order = link.order
    summary = get_order_completion_summary(order.pk)
    return JsonResponse({
        "ok": True,
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "status": order.status,
        "status_label": order.get_status_display(),
        "due_date": order.due_date.isoformat() if order.due_date else None,
        "expires_at": link.expires_at.isoformat() if link.expires_at else None,
        **summary.as_dict(),
    })


@require_GET
@json_errors
def qr_image_svg(request, token: str):
    """QR code (SVG) pointing at the public summary of an order link."""
    link = resolve_order_link(token)
    url = request.build_absolute_uri(reverse("orders:public_order_summary", args=[link.token]))
    return HttpResponse(render_qr_svg(url), content_type="image/svg+xml; charset=utf-8")
