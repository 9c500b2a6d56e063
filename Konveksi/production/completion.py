"""Completion calculator.

The ``compute_*`` functions derive completion from progress entries only and
never write. The ``refresh_*`` and ``reconcile_*`` functions rewrite the
cached fields on ``OrderItem`` and ``Order`` from those results.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from django.db.models import Sum
from django.utils import timezone

from orders.models import Order, OrderItem
from orders.state_machine import apply_progress_rules
from utils.exceptions import ConsistencyError, LineItemNotFound, OrderNotFound

from .models import ProgressEntry

logger = logging.getLogger(__name__)


def completion_percentage(completed: int, ordered: int) -> int:
    """``round_half_up(100 * completed / ordered)`` clamped to 0..100; 0 when nothing ordered."""
    if ordered <= 0:
        return 0
    pct = (Decimal(completed) * 100 / Decimal(ordered)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, min(100, int(pct)))


@dataclass
class LineItemCompletion:
    line_item_id: int
    product_id: int
    product_name: str
    completed: int
    ordered: int
    remaining: int
    percentage: int
    is_complete: bool

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class OrderCompletion:
    order_id: int
    total_ordered: int
    total_completed: int
    percentage: int
    is_order_complete: bool
    product_summaries: List[LineItemCompletion] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "total_ordered": self.total_ordered,
            "total_completed": self.total_completed,
            "percentage": self.percentage,
            "is_order_complete": self.is_order_complete,
            "product_summaries": [s.as_dict() for s in self.product_summaries],
        }


def _completed_by_line_item(line_item_ids) -> dict:
    rows = (
        ProgressEntry.objects
        .filter(line_item_id__in=list(line_item_ids))
        .order_by()
        .values_list("line_item_id")
        .annotate(total=Sum("pcs_finished"))
    )
    return {li_id: total or 0 for li_id, total in rows}


def _snapshot(item: OrderItem, completed: int) -> LineItemCompletion:
    return LineItemCompletion(
        line_item_id=item.pk,
        product_id=item.product_id,
        product_name=str(item.product),
        completed=completed,
        ordered=item.quantity,
        remaining=max(item.quantity - completed, 0),
        percentage=completion_percentage(completed, item.quantity),
        is_complete=completed >= item.quantity,
    )


def compute_line_item_completion(line_item_id) -> LineItemCompletion:
    item = OrderItem.objects.select_related("product").filter(pk=line_item_id).first()
    if item is None:
        raise LineItemNotFound(line_item_id, None)
    completed = _completed_by_line_item([item.pk]).get(item.pk, 0)
    return _snapshot(item, completed)


def compute_order_completion(order_id) -> OrderCompletion:
    if not Order.objects.filter(pk=order_id).exists():
        raise OrderNotFound(order_id)
    items = list(OrderItem.objects.filter(order_id=order_id).select_related("product").order_by("id"))
    completed_map = _completed_by_line_item(i.pk for i in items)
    summaries = [_snapshot(i, completed_map.get(i.pk, 0)) for i in items]

    total_ordered = sum(s.ordered for s in summaries)
    total_completed = sum(s.completed for s in summaries)
    return OrderCompletion(
        order_id=int(order_id),
        total_ordered=total_ordered,
        total_completed=total_completed,
        percentage=completion_percentage(total_completed, total_ordered),
        is_order_complete=bool(summaries) and all(s.is_complete for s in summaries),
        product_summaries=summaries,
    )


# ---------------------------------------------------------------------------
# Cache maintenance
# ---------------------------------------------------------------------------
def refresh_line_item_cache(item: OrderItem) -> LineItemCompletion:
    """Rewrite ``completed_qty``/``is_completed``/``completed_at`` from the entries."""
    snap = compute_line_item_completion(item.pk)
    item.completed_qty = min(snap.completed, item.quantity)
    if snap.is_complete:
        if not item.is_completed or item.completed_at is None:
            item.completed_at = timezone.now()
        item.is_completed = True
    else:
        item.is_completed = False
        item.completed_at = None
    item.save(update_fields=["completed_qty", "is_completed", "completed_at"])
    return snap


def refresh_order_cache(order: Order) -> OrderCompletion:
    completion = compute_order_completion(order.pk)
    order.target_pcs = completion.total_ordered
    order.completed_pcs = min(completion.total_completed, completion.total_ordered)
    order.save(update_fields=["target_pcs", "completed_pcs", "updated_at"])
    return completion


def find_completion_drift(order_id) -> List[ConsistencyError]:
    """Compare cached completion fields of an order and its line items with the entries."""
    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        raise OrderNotFound(order_id)
    completion = compute_order_completion(order.pk)
    cached_items = {i.pk: i for i in OrderItem.objects.filter(order=order)}

    drift = []
    for snap in completion.product_summaries:
        item = cached_items[snap.line_item_id]
        if item.completed_qty != snap.completed or item.is_completed != snap.is_complete:
            drift.append(ConsistencyError(
                f"line item {item.pk} completed_qty",
                snap.completed,
                item.completed_qty,
            ))
    if order.completed_pcs != completion.total_completed:
        drift.append(ConsistencyError(f"order {order.pk} completed_pcs", completion.total_completed, order.completed_pcs))
    if order.target_pcs != completion.total_ordered:
        drift.append(ConsistencyError(f"order {order.pk} target_pcs", completion.total_ordered, order.target_pcs))
    return drift


def reconcile_order_completion(order: Order, user=None) -> List[ConsistencyError]:
    """
    Log any drift on ``order`` and rewrite its caches (and derived status).

    Must run inside a transaction that holds the order row lock.
    """
    drift = find_completion_drift(order.pk)
    if not drift:
        return drift
    for err in drift:
        logger.error("completion drift detected: %s", err.detail)
    for item in OrderItem.objects.select_for_update().filter(order=order).order_by("id"):
        refresh_line_item_cache(item)
    completion = refresh_order_cache(order)
    apply_progress_rules(order, completion.total_completed, completion.total_ordered, user=user)
    return drift

