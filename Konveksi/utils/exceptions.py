"""Domain error taxonomy shared by the production, orders and inventory apps.

Every error carries a stable ``code`` for API clients, an HTTP status hint
and an ``as_dict()`` payload.  Views translate these into ``JsonResponse``
objects; services never catch them except to roll back a transaction.
"""

from __future__ import annotations

from decimal import Decimal


class DomainError(Exception):
    code = "domain_error"
    http_status = 400
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self) -> dict:
        payload = {"ok": False, "error": self.code, "message": self.message}
        for key, value in self.context.items():
            payload[key] = str(value) if isinstance(value, Decimal) else value
        return payload


# ---------------------------------------------------------------------------
# Validation (bad input shape or range)
# ---------------------------------------------------------------------------
class DomainValidationError(DomainError):
    code = "validation_error"
    http_status = 400

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}", field=field, reason=reason)


class NegativeQuantity(DomainValidationError):
    code = "negative_quantity"

    def __init__(self, field: str = "quantity", quantity=None):
        super().__init__(field, f"quantity must be greater than zero (got {quantity})")


# ---------------------------------------------------------------------------
# State conflicts (the caller must correct input before retrying)
# ---------------------------------------------------------------------------
class StateConflictError(DomainError):
    code = "state_conflict"
    http_status = 409


class OrderCancelled(StateConflictError):
    code = "order_cancelled"

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} is cancelled.", order_id=order_id)


class OrderNotAcceptingProgress(StateConflictError):
    code = "order_closed"

    def __init__(self, order_id: int, status: str):
        super().__init__(
            f"Order {order_id} is {status}; piece completions are no longer accepted.",
            order_id=order_id,
            status=status,
        )


class QuantityExceeded(StateConflictError):
    code = "quantity_exceeded"

    def __init__(self, line_item_id: int, remaining: int, attempted: int):
        self.line_item_id = line_item_id
        self.remaining = remaining
        super().__init__(
            f"Line item {line_item_id} has {remaining} pieces remaining; attempted {attempted}.",
            line_item_id=line_item_id,
            remaining=remaining,
            attempted=attempted,
        )


class IllegalTransition(StateConflictError):
    code = "illegal_transition"

    def __init__(self, order_id: int, current: str, requested: str):
        super().__init__(
            f"Order {order_id} cannot move from {current} to {requested}.",
            order_id=order_id,
            current=current,
            requested=requested,
        )


class AlreadyReversed(StateConflictError):
    code = "already_reversed"

    def __init__(self, entry_id: int):
        super().__init__(f"Progress entry {entry_id} cannot be reversed.", entry_id=entry_id)


# ---------------------------------------------------------------------------
# Not found (404-equivalent)
# ---------------------------------------------------------------------------
class NotFoundError(DomainError):
    code = "not_found"
    http_status = 404


class OrderNotFound(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_ref):
        super().__init__(f"Order {order_ref} not found.", order=str(order_ref))


class OrderLinkNotFound(NotFoundError):
    code = "order_link_not_found"

    def __init__(self):
        super().__init__("Order link not found or has expired.")


class LineItemNotFound(NotFoundError):
    code = "line_item_not_found"

    def __init__(self, line_item_id, order_id: int):
        super().__init__(
            f"Line item {line_item_id} does not belong to order {order_id}.",
            line_item_id=line_item_id,
            order_id=order_id,
        )


class MaterialNotFound(NotFoundError):
    code = "material_not_found"

    def __init__(self, material_ref):
        super().__init__(f"Material {material_ref} not found.", material=str(material_ref))


class PurchaseNotFound(NotFoundError):
    code = "purchase_not_found"

    def __init__(self, purchase_id):
        super().__init__(f"Purchase {purchase_id} not found.", purchase_id=purchase_id)


class ProgressEntryNotFound(NotFoundError):
    code = "progress_entry_not_found"

    def __init__(self, entry_id):
        super().__init__(f"Progress entry {entry_id} not found.", entry_id=entry_id)


# ---------------------------------------------------------------------------
# Internal consistency
# ---------------------------------------------------------------------------
class ConsistencyError(DomainError):
    """A cached field disagrees with the facts it is derived from.

    Raised (or logged) by reconciliation code.  Callers only ever see the
    generic message; the context goes to the log.
    """

    code = "internal_error"
    http_status = 500
    default_message = "Internal consistency check failed."

    def __init__(self, subject: str, expected, cached):
        self.subject = subject
        self.expected = expected
        self.cached = cached
        super().__init__(self.default_message)
        self.detail = f"{subject}: expected {expected}, cached {cached}"

    def as_dict(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.default_message}

    def __str__(self) -> str:
        return self.detail
