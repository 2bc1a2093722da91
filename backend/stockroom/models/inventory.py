from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from stockroom.time_utils import to_utc_z
from .enums import ProductStatus, StockMovementType, InventoryAdjustmentType


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to rewrite an append-only row."""


class Product(db.Model):
    """
    Product master data plus the current-stock projection.

    STOCK DESIGN DECISION:
    Product.stock is a projection of the stock ledger. It is written ONLY by
    services.ledger_service (the single writer), in the same transaction as
    the StockMovement that explains the change. Catalog edits never touch it.

    SKU is globally unique: UniqueConstraint("sku").
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_status_stock", "status", "stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(100), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    barcode = db.Column(db.String(50), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)
    unit_of_measure = db.Column(db.String(20), nullable=False, default="pcs")

    status = db.Column(
        db.Enum(ProductStatus, native_enum=False, length=16),
        nullable=False,
        default=ProductStatus.ACTIVE,
        index=True,
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        return (
            self.min_stock > 0
            and self.stock <= self.min_stock
            and self.status == ProductStatus.ACTIVE
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "barcode": self.barcode,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "unit_of_measure": self.unit_of_measure,
            "status": self.status.value,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_brief(self) -> dict:
        return {"id": self.id, "name": self.name, "sku": self.sku}


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    GUARANTEES:
    - Created once, never updated or deleted (enforced by mapper events).
    - new_stock = previous_stock + quantity (IN) or - quantity (OUT),
      checked in the service and by a table CHECK constraint.
    - For one product, rows ordered by id form an unbroken chain:
      previous_stock[n+1] == new_stock[n].
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.CheckConstraint("new_stock >= 0", name="ck_stock_movements_new_stock_non_negative"),
        db.CheckConstraint(
            "(movement_type = 'IN' AND new_stock = previous_stock + quantity)"
            " OR (movement_type = 'OUT' AND new_stock = previous_stock - quantity)",
            name="ck_stock_movements_reconciles",
        ),
        db.Index("ix_stock_movements_product_id_id", "product_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.Enum(StockMovementType, native_enum=False, length=8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    reference = db.Column(db.String(255), nullable=True, index=True)
    notes = db.Column(db.String(500), nullable=True)

    # Opaque acting-user reference supplied by the auth layer
    user_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_brief() if self.product else None,
            "movement_type": self.movement_type.value,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "unit_cost_cents": self.unit_cost_cents,
            "reference": self.reference,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryAdjustment(db.Model):
    """
    Manual, reason-coded stock correction.

    Each row points at the one StockMovement it produced; both are written
    in the same transaction.
    """
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_adjustments_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    stock_movement_id = db.Column(
        db.Integer, db.ForeignKey("stock_movements.id"), nullable=False, unique=True
    )

    adjustment_type = db.Column(db.Enum(InventoryAdjustmentType, native_enum=False, length=16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.String(500), nullable=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("adjustments", lazy="dynamic"))
    stock_movement = db.relationship("StockMovement")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "stock_movement_id": self.stock_movement_id,
            "adjustment_type": self.adjustment_type.value,
            "quantity": self.quantity,
            "reason": self.reason,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
@event.listens_for(StockMovement, "before_delete")
@event.listens_for(InventoryAdjustment, "before_update")
@event.listens_for(InventoryAdjustment, "before_delete")
def _reject_rewrite(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only")
