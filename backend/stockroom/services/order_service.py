"""
Order Fulfillment Service - multi-item orders with all-or-nothing stock effects

WHY: An order touches the order row, its items, product stock and the stock
ledger. Each of create/cancel runs as ONE atomic unit so a failure on any
item leaves no trace: no order row, no stock deduction, no ledger entry.

State machine (Order.status):
    PENDING    --(payment reaches full)-->  PROCESSING   [payment_service]
    (created with final amount 0)  -->       PROCESSING   [create_order]
    PENDING    --(cancel_order)-->          CANCELLED    [terminal]
    PROCESSING --(cancel_order)-->          CANCELLED    [terminal]
    PROCESSING --(fulfilment update)-->     SHIPPED --> DELIVERED [terminal]
    non-terminal --(refund)-->              REFUNDED     [terminal]

Stock is deducted exactly once at creation and restored exactly once, only
by cancel_order.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import (
    Customer,
    Order,
    OrderItem,
    OrderNumberSequence,
    OrderStatus,
    Product,
    ProductStatus,
    StockMovementType,
)
from ..errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from ..time_utils import day_stamp, utcnow
from .concurrency import lock_for_update, run_atomic
from .ledger_service import _apply_stock_movement_locked


ORDER_NUMBER_PREFIX = "ORD"

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})

# Edges reachable through update_order_status. PENDING -> PROCESSING is
# driven by payments and -> CANCELLED only by cancel_order.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.REFUNDED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

_unmapped = set(OrderStatus) - set(ALLOWED_TRANSITIONS)
if _unmapped:
    raise RuntimeError(f"Order statuses without transition rules: {sorted(s.value for s in _unmapped)}")


# =============================================================================
# ORDER NUMBERS
# =============================================================================

def format_order_number(day: date, sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{day_stamp(day)}-{sequence:03d}"


def _highest_existing_sequence(day: date) -> int:
    prefix = f"{ORDER_NUMBER_PREFIX}-{day_stamp(day)}-"
    numbers = (
        db.session.query(Order.order_number)
        .filter(Order.order_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


def allocate_order_number(day: date) -> str:
    """
    Allocate the next ORD-YYYYMMDD-NNN number for a calendar day.

    Must run inside the order-creation transaction. The counter row is
    bumped with a single UPDATE, so concurrent allocations serialise on it.
    The first order of a day seeds the counter from the highest number
    already on file; two transactions racing to seed the same day collide
    on the primary key, and the loser is retried as a whole.
    """
    key = day_stamp(day)

    result = db.session.execute(
        update(OrderNumberSequence)
        .where(OrderNumberSequence.day_key == key)
        .values(last_number=OrderNumberSequence.last_number + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        sequence = (
            db.session.query(OrderNumberSequence.last_number)
            .filter(OrderNumberSequence.day_key == key)
            .scalar()
        )
    else:
        sequence = _highest_existing_sequence(day) + 1
        db.session.add(OrderNumberSequence(day_key=key, last_number=sequence))
        db.session.flush()

    return format_order_number(day, sequence)


# =============================================================================
# CREATE / CANCEL
# =============================================================================

def _load_order_locked(order_id: int) -> Order:
    order = (
        lock_for_update(db.session.query(Order).filter_by(id=order_id))
        .populate_existing()
        .first()
    )
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def _price_items(items: list[dict]) -> tuple[list[dict], int]:
    """Validate items against current stock and freeze unit prices."""
    priced = []
    total = 0
    for item in items:
        product = db.session.get(Product, item["product_id"], populate_existing=True)
        if product is None:
            raise NotFoundError("Product", item["product_id"])

        if product.status != ProductStatus.ACTIVE:
            raise InvalidStateError(
                f"Product {product.name} is {product.status.value} and cannot be ordered",
                current=product.status.value,
                attempted="ORDER",
                product_id=product.id,
            )

        quantity = item["quantity"]
        if product.stock < quantity:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=product.stock,
                requested=quantity,
            )

        unit_price = item.get("unit_price_cents")
        if unit_price is None:
            unit_price = product.price_cents
        line_total = unit_price * quantity
        total += line_total

        priced.append({
            "product": product,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "total_price_cents": line_total,
        })
    return priced, total


def create_order(
    *,
    items: list[dict],
    customer_id: int | None = None,
    discount_cents: int = 0,
    tax_cents: int = 0,
    notes: str | None = None,
    user_id: int | None = None,
) -> Order:
    """
    Create an order and deduct stock for every item, atomically.

    items: [{"product_id": int, "quantity": int, "unit_price_cents": int | None}]

    Raises:
        NotFoundError: customer or product missing
        InsufficientStockError: an item exceeds stock (checked up front, and
            again by the ledger under the write lock)
        ConstraintViolationError: order-number race persisted past retries
        TransactionConflictError: commit failed past retries
    """
    if not items:
        raise ValidationError("order must contain at least one item")
    if discount_cents < 0 or tax_cents < 0:
        raise ValidationError("discount_cents and tax_cents must be >= 0")

    def _op():
        if customer_id is not None and db.session.get(Customer, customer_id) is None:
            raise NotFoundError("Customer", customer_id)

        priced, total = _price_items(items)
        if discount_cents > total:
            raise ValidationError(
                "discount_cents cannot exceed the order total",
                details={"total_amount_cents": total, "discount_cents": discount_cents},
            )

        now = utcnow()
        order_number = allocate_order_number(now.date())
        final = total - discount_cents + tax_cents
        # Nothing to collect: the order is settled on creation
        settled = final <= 0

        order = Order(
            order_number=order_number,
            customer_id=customer_id,
            total_amount_cents=total,
            discount_cents=discount_cents,
            tax_cents=tax_cents,
            final_amount_cents=final,
            status=OrderStatus.PROCESSING if settled else OrderStatus.PENDING,
            order_date=now,
            paid_date=now if settled else None,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(order)
        db.session.flush()

        for line in priced:
            product = line["product"]
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                total_price_cents=line["total_price_cents"],
            ))
            _apply_stock_movement_locked(
                product_id=product.id,
                movement_type=StockMovementType.OUT,
                quantity=line["quantity"],
                reference=order_number,
                notes=f"Sale order - {order_number}",
                user_id=user_id,
                unit_cost_cents=product.cost_price_cents,
            )

        db.session.flush()
        return order

    order = run_atomic(_op, retry_on_integrity=True)
    current_app.logger.info("Created order %s (%d items)", order.order_number, len(order.items))
    return order


def cancel_order(order_id: int, user_id: int | None = None) -> Order:
    """
    Cancel a PENDING/PROCESSING order and restore every item's stock.

    The status change and all restorations commit together. A second
    cancellation is rejected, so stock is never restored twice.
    """
    def _op():
        order = _load_order_locked(order_id)

        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError(
                "Can only cancel pending or processing orders",
                current=order.status.value,
                attempted=OrderStatus.CANCELLED.value,
                order_id=order.id,
            )

        order.status = OrderStatus.CANCELLED
        order.cancelled_by_user_id = user_id
        order.cancelled_at = utcnow()

        for item in order.items:
            _apply_stock_movement_locked(
                product_id=item.product_id,
                movement_type=StockMovementType.IN,
                quantity=item.quantity,
                reference=f"Order Cancelled {order.order_number}",
                notes=f"Stock restored due to order cancellation - {order.order_number}",
                user_id=user_id,
            )

        db.session.flush()
        return order

    order = run_atomic(_op)
    current_app.logger.info("Cancelled order %s", order.order_number)
    return order


def update_order_status(
    order_id: int,
    *,
    status: OrderStatus | None = None,
    due_date=None,
) -> Order:
    """
    Move an order along the fulfilment/refund edges of the state machine,
    and/or set its due date. Never touches stock.
    """
    def _op():
        order = _load_order_locked(order_id)

        if status is OrderStatus.CANCELLED:
            raise InvalidStateError(
                "Use the cancel operation to cancel an order",
                current=order.status.value,
                attempted=OrderStatus.CANCELLED.value,
                order_id=order.id,
            )

        if status is not None and status != order.status:
            if status not in ALLOWED_TRANSITIONS[order.status]:
                raise InvalidStateError(
                    f"Cannot change order status from {order.status.value} to {status.value}",
                    current=order.status.value,
                    attempted=status.value,
                    order_id=order.id,
                )
            order.status = status

        if due_date is not None:
            order.due_date = due_date

        db.session.flush()
        return order

    return run_atomic(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def get_order_detail(order_id: int) -> dict:
    """Order with items, customer, payments and a freshly computed payment summary."""
    from .payment_service import get_payment_summary, list_payments

    order = get_order(order_id)
    data = order.to_dict()
    data["payments"] = [p.to_dict() for p in list_payments(order_id)]
    data["payment_summary"] = get_payment_summary(order_id)
    return data


def list_orders(*, page: int = 1, limit: int = 10, status: OrderStatus | None = None) -> dict:
    q = db.session.query(Order)
    if status is not None:
        q = q.filter(Order.status == status)
    total = q.count()
    orders = (
        q.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "data": orders,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }
