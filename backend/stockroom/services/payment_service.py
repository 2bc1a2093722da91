# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Reconciliation Service

WHY: Track payments received against an order's final amount and keep the
order's status consistent with what has been paid.

DESIGN PRINCIPLES:
- Payments are separate from orders (many-to-one relationship)
- Partial payments allowed; the sum may never exceed final_amount_cents
- Immutable ledger: payments are append-only
- Paid state is derived: the summary is recomputed from rows on every read
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderStatus, Payment, PaymentMethod
from ..errors import InvalidStateError, NotFoundError, OverPaymentError, ValidationError
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_atomic


# Orders in these states accept no further money
CLOSED_FOR_PAYMENT = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})


def _total_paid_cents(order_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.order_id == order_id)
        .scalar()
    )
    return int(total or 0)


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def add_payment(
    order_id: int,
    *,
    amount_cents: int,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    payment_date: datetime | None = None,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Payment:
    """
    Add a payment to an order.

    WHY: Core reconciliation operation. Validates the amount against the
    remaining balance, appends the payment, and when the order becomes fully
    paid stamps paid_date and advances PENDING -> PROCESSING.

    Raises:
        NotFoundError: order does not exist
        InvalidStateError: order is CANCELLED or REFUNDED
        OverPaymentError: amount exceeds the remaining balance
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("Payment amount must be a positive integer number of cents")

    def _op():
        # Lock the order so concurrent payments see each other's totals
        order = (
            lock_for_update(db.session.query(Order).filter_by(id=order_id))
            .populate_existing()
            .first()
        )
        if order is None:
            raise NotFoundError("Order", order_id)

        if order.status in CLOSED_FOR_PAYMENT:
            raise InvalidStateError(
                f"Cannot add payment to a {order.status.value} order",
                current=order.status.value,
                attempted="PAYMENT",
                order_id=order.id,
            )

        total_paid = _total_paid_cents(order.id)
        remaining = order.final_amount_cents - total_paid

        if amount_cents > remaining:
            raise OverPaymentError(
                order_id=order.id,
                remaining_cents=remaining,
                attempted_cents=amount_cents,
            )

        payment = Payment(
            order_id=order.id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            payment_date=payment_date or utcnow(),
            reference=reference,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(payment)

        if total_paid + amount_cents >= order.final_amount_cents:
            order.paid_date = utcnow()
            if order.status is OrderStatus.PENDING:
                order.status = OrderStatus.PROCESSING

        db.session.flush()
        return payment

    payment = run_atomic(_op)
    current_app.logger.info(
        "Recorded payment %d of %d cents on order %d", payment.id, amount_cents, order_id
    )
    return payment


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

def list_payments(order_id: int) -> list[Payment]:
    """All payments for an order, newest first."""
    if db.session.get(Order, order_id) is None:
        raise NotFoundError("Order", order_id)
    return (
        db.session.query(Payment)
        .filter_by(order_id=order_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def get_payment_summary(order_id: int) -> dict:
    """
    Payment summary for an order, recomputed on demand.

    Returns:
        {"total_paid_cents", "remaining_amount_cents", "is_paid"}
    """
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)

    total_paid = _total_paid_cents(order_id)
    remaining = order.final_amount_cents - total_paid
    return {
        "order_id": order_id,
        "final_amount_cents": order.final_amount_cents,
        "total_paid_cents": total_paid,
        "remaining_amount_cents": remaining,
        "is_paid": remaining <= 0,
    }
