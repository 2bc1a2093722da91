from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from stockroom.time_utils import to_utc_z
from .enums import OrderStatus, PaymentMethod
from .inventory import ImmutableRecordError


class Order(db.Model):
    """
    Customer order (multi-item) and its fulfilment status.

    WHY amounts are stored: items are frozen at creation, so total/final
    amounts never drift. Paid state is NOT stored beyond paid_date; the
    payment summary is recomputed from Payment rows on every read.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "ORD-20261017-001"
    order_number = db.Column(db.String(32), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # All amounts in cents
    total_amount_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(
        db.Enum(OrderStatus, native_enum=False, length=16),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.String(1000), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("orders", lazy="dynamic"))
    items = db.relationship("OrderItem", back_populates="order", order_by="OrderItem.id", lazy="selectin")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "total_amount_cents": self.total_amount_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "final_amount_cents": self.final_amount_cents,
            "status": self.status.value,
            "order_date": to_utc_z(self.order_date),
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "paid_date": to_utc_z(self.paid_date) if self.paid_date else None,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Order line. unit_price_cents is the price snapshot at order time."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product": self.product.to_brief() if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class Payment(db.Model):
    """
    Payment received against an order.

    IMMUTABLE: append-only. The set of rows for an order determines
    total_paid and the remaining balance.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(
        db.Enum(PaymentMethod, native_enum=False, length=32),
        nullable=False,
        default=PaymentMethod.CASH,
    )
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)
    reference = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(500), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method.value,
            "payment_date": to_utc_z(self.payment_date),
            "reference": self.reference,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class OrderNumberSequence(db.Model):
    """
    Per-day order number counter.

    One row per calendar day (day_key = "YYYYMMDD"). Allocation increments
    last_number with a single UPDATE inside the order-creation transaction,
    so two concurrent orders can never read the same value.
    """
    __tablename__ = "order_number_sequences"

    day_key = db.Column(db.String(8), primary_key=True)
    last_number = db.Column(db.Integer, nullable=False)


@event.listens_for(Payment, "before_update")
@event.listens_for(Payment, "before_delete")
def _reject_payment_rewrite(mapper, connection, target):
    raise ImmutableRecordError("Payment rows are append-only")
