# Overview: Domain error taxonomy shared by services and routes.

"""
STOCKROOM SERVICE ERRORS

Every failure a caller can act on is one of these. Each error carries a
stable `code`, the HTTP status the API renders it with, and a `details`
dict with enough structure (entity, ids, quantities, states) for a client
to build a message without re-querying.

Retry policy:
- NotFound / InsufficientStock / InvalidState / OverPayment / Validation
  are terminal for the request.
- TransactionConflict is flagged `retryable`; the transaction helper retries
  it a bounded number of times before it reaches the caller.
- ConstraintViolation is retryable only for sequence races. A duplicate
  business key (SKU) carries `retryable=False`.
"""

from __future__ import annotations


class StockroomError(Exception):
    """Base exception for all stockroom service failures."""

    status_code = 400
    code = "error"
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(StockroomError):
    """400-level input problem."""

    code = "validation_error"


class NotFoundError(StockroomError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} with ID {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )


class InsufficientStockError(StockroomError):
    """An OUT movement would drive stock below zero."""

    status_code = 409
    code = "insufficient_stock"

    def __init__(self, *, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_name}. "
            f"Available: {available}, Requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )


class InvalidStateError(StockroomError):
    status_code = 409
    code = "invalid_state"

    def __init__(self, message: str, *, current: str, attempted: str, **extra):
        super().__init__(message, details={"current": current, "attempted": attempted, **extra})


class OverPaymentError(StockroomError):
    status_code = 409
    code = "over_payment"

    def __init__(self, *, order_id: int, remaining_cents: int, attempted_cents: int):
        super().__init__(
            f"Payment amount exceeds remaining balance. Remaining: {remaining_cents}",
            details={
                "order_id": order_id,
                "remaining_cents": remaining_cents,
                "attempted_cents": attempted_cents,
            },
        )


class ConstraintViolationError(StockroomError):
    """409-level uniqueness conflict (duplicate SKU, order number race)."""

    status_code = 409
    code = "constraint_violation"
    retryable = True

    def __init__(self, message: str, details: dict | None = None, *, retryable: bool = True):
        super().__init__(message, details)
        self.retryable = retryable


class TransactionConflictError(StockroomError):
    """The atomic unit could not commit; nothing from it is visible."""

    status_code = 409
    code = "transaction_conflict"
    retryable = True
