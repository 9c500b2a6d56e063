"""Order status transitions.

``Order.status`` is written only here. Manual transitions come from staff
actions and are checked against ``MANUAL_TRANSITIONS``; progress-driven
transitions are derived from aggregate completion by ``apply_progress_rules``.
Every change is stored as an ``OrderStatusChange`` row.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from django.db import transaction

from utils.exceptions import DomainValidationError, IllegalTransition, OrderNotFound

from .models import Order, OrderStatusChange

logger = logging.getLogger(__name__)

S = Order.Status

TERMINAL_STATUSES = frozenset({S.DELIVERED, S.CANCELLED})

# Statuses in which new piece completions are refused
CLOSED_FOR_PIECES = frozenset({S.COMPLETED, S.SHIPPED, S.DELIVERED, S.CANCELLED})

# target -> statuses it may be entered from
MANUAL_TRANSITIONS = {
    S.NEED_MATERIAL: frozenset({S.CREATED, S.CONFIRMED, S.PROCESSING}),
    S.CONFIRMED: frozenset({S.CREATED, S.NEED_MATERIAL}),
    S.SHIPPED: frozenset({S.COMPLETED}),
    S.DELIVERED: frozenset({S.SHIPPED}),
    S.CANCELLED: frozenset(set(S.values) - TERMINAL_STATUSES),
}

START_PROCESSING_FROM = frozenset({S.CREATED, S.CONFIRMED})
COMPLETE_FROM = frozenset({S.CREATED, S.NEED_MATERIAL, S.CONFIRMED, S.PROCESSING})


@dataclass
class TransitionOutcome:
    previous_status: str
    new_status: str
    changes: List[OrderStatusChange] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous_status != self.new_status

    @property
    def reason(self) -> str:
        return "; ".join(c.reason for c in self.changes if c.reason)


def can_transition(current: str, target: str) -> bool:
    return current in MANUAL_TRANSITIONS.get(target, ())


def allowed_manual_targets(current: str) -> list[str]:
    return [target for target, sources in MANUAL_TRANSITIONS.items() if current in sources]


def _record(order: Order, new_status: str, user=None, reason: str = "") -> OrderStatusChange:
    old_status = order.status
    order.status = new_status
    order.save(update_fields=["status", "updated_at"])
    change = OrderStatusChange.objects.create(
        order=order,
        old_status=old_status,
        new_status=new_status,
        changed_by=user if getattr(user, "is_authenticated", False) else None,
        reason=reason[:255],
    )
    logger.info("order %s status %s -> %s (%s)", order.order_number, old_status, new_status, reason)
    return change


def transition_order(order_ref, new_status: str, user=None, reason: str = "") -> TransitionOutcome:
    """
    Apply a manual status change after checking it against the legality table.

    ``order_ref`` is an Order or its id. Raises ``IllegalTransition`` when the
    order's current status does not allow ``new_status``.
    """
    if new_status not in MANUAL_TRANSITIONS:
        if new_status in S.values:
            raise DomainValidationError("status", f"{new_status} is derived from progress and cannot be set manually")
        raise DomainValidationError("status", f"unknown status {new_status!r}")

    order_id = order_ref.pk if isinstance(order_ref, Order) else order_ref
    with transaction.atomic():
        try:
            order = Order.objects.select_for_update().get(pk=order_id)
        except (Order.DoesNotExist, ValueError, TypeError):
            raise OrderNotFound(order_id)

        previous = order.status
        if not can_transition(previous, new_status):
            raise IllegalTransition(order.pk, previous, new_status)

        change = _record(order, new_status, user=user, reason=reason or f"manual: {new_status}")
    if isinstance(order_ref, Order):
        order_ref.status = order.status
    return TransitionOutcome(previous, order.status, [change])


def apply_progress_rules(order: Order, total_completed: int, total_ordered: int, user=None) -> TransitionOutcome:
    """
    Derive status from aggregate completion. Callers hold the order row lock.

    Rules, in order:
    1. pieces recorded while ``created``/``confirmed`` -> ``processing``
    2. completed >= ordered (> 0) while still in production -> ``completed``
    3. completed < ordered while ``completed`` -> ``processing`` (after a correction)
    """
    outcome = TransitionOutcome(order.status, order.status)

    if total_completed > 0 and order.status in START_PROCESSING_FROM:
        outcome.changes.append(
            _record(order, S.PROCESSING, user, f"production started: {total_completed} pcs recorded")
        )

    if total_ordered > 0 and total_completed >= total_ordered and order.status in COMPLETE_FROM:
        outcome.changes.append(
            _record(order, S.COMPLETED, user, f"all {total_ordered} pcs completed")
        )
    elif order.status == S.COMPLETED and total_completed < total_ordered:
        outcome.changes.append(
            _record(order, S.PROCESSING, user, f"completion reverted: {total_completed}/{total_ordered} pcs")
        )

    outcome.new_status = order.status
    return outcome


def order_timeline(order: Order) -> list[dict]:
    return [
        {
            "old_status": c.old_status,
            "new_status": c.new_status,
            "reason": c.reason,
            "changed_by": getattr(c.changed_by, "username", None),
            "created_at": c.created_at.isoformat(),
        }
        for c in order.status_changes.select_related("changed_by")
    ]


def is_accepting_pieces(order: Order) -> bool:
    return order.status not in CLOSED_FOR_PIECES

