import logging

from django.contrib.auth.decorators import login_required
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST
from django.http import JsonResponse

from orders.links import resolve_order_link
from utils.http import json_errors, manager_required, read_json

from .forms import parse_submission_payload
from .services import (
    get_line_item_completion_status,
    get_order_completion_summary,
    reverse_progress_entry,
    submit_progress,
)

logger = logging.getLogger(__name__)


# ------------------------------
# Progress submission
# ------------------------------

@require_POST
@login_required
@json_errors
def submit_progress_view(request, order_id: int):
    """Record progress for an order on behalf of the signed-in user."""
    payload, meta = parse_submission_payload(read_json(request))
    meta.user = request.user
    if not meta.worker_name:
        meta.worker_name = getattr(request.user, "full_name", "") or request.user.get_username()
    result = submit_progress(order_id, payload, meta)
    return JsonResponse(result.as_dict(), status=200 if result.duplicate else 201)


@csrf_exempt
@require_POST
@json_errors
def submit_progress_by_link(request, token: str):
    """
    Public endpoint behind an order link; no account needed.

    The token is the only credential, so the request is CSRF-exempt and the
    worker identifies themselves with ``worker_name``.
    """
    payload, meta = parse_submission_payload(read_json(request))
    meta.user = None
    result = submit_progress(token, payload, meta)
    return JsonResponse(result.as_dict(), status=200 if result.duplicate else 201)


@require_POST
@login_required
@manager_required
@json_errors
def reverse_entry_view(request, entry_id: int):
    data = read_json(request)
    result = reverse_progress_entry(entry_id, user=request.user, reason=(data.get("reason") or "").strip())
    return JsonResponse(result.as_dict(), status=201)


# ------------------------------
# Completion read side
# ------------------------------

@require_GET
@login_required
@json_errors
def order_completion_view(request, order_id: int):
    summary = get_order_completion_summary(order_id)
    return JsonResponse({"ok": True, **summary.as_dict()})


@require_GET
@login_required
@json_errors
def line_items_view(request, order_id: int):
    rows = get_line_item_completion_status(order_id)
    return JsonResponse({"ok": True, "order_id": order_id, "results": [r.as_dict() for r in rows]})


@require_GET
@json_errors
def link_completion_view(request, token: str):
    """Completion summary for workers holding an order link."""
    link = resolve_order_link(token)
    summary = get_order_completion_summary(link.order_id)
    return JsonResponse({"ok": True, "order_number": link.order.order_number, **summary.as_dict()})
