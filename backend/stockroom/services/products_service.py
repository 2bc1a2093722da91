# Overview: Service-layer operations for products; catalog writes that respect the stock ledger.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import OrderItem, Product, ProductStatus, StockMovement, StockMovementType
from ..errors import ConstraintViolationError, InvalidStateError, NotFoundError, ValidationError
from .concurrency import run_atomic
from .ledger_service import _apply_stock_movement_locked


INITIAL_STOCK_REFERENCE = "Initial Stock"

# Catalog fields an update may touch. Stock is deliberately absent: it only
# changes through the ledger (adjustments and orders).
UPDATABLE_FIELDS = {
    "name",
    "description",
    "barcode",
    "price_cents",
    "cost_price_cents",
    "min_stock",
    "max_stock",
    "unit_of_measure",
    "status",
}


def _ensure_sku_available(sku: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConstraintViolationError(
            f"Product with SKU {sku!r} already exists",
            details={"entity": "Product", "field": "sku", "value": sku},
            retryable=False,
        )


def create_product(
    *,
    sku: str,
    name: str,
    price_cents: int,
    cost_price_cents: int,
    stock: int = 0,
    min_stock: int = 0,
    max_stock: int | None = None,
    description: str | None = None,
    barcode: str | None = None,
    unit_of_measure: str = "pcs",
    status: ProductStatus = ProductStatus.ACTIVE,
    user_id: int | None = None,
) -> Product:
    """
    Create a product. A non-zero initial stock is booked through the ledger
    as one IN movement referenced "Initial Stock", in the same transaction.
    """
    if stock < 0:
        raise ValidationError("stock must be >= 0")
    if max_stock is not None and max_stock < min_stock:
        raise ValidationError("max_stock must be >= min_stock")

    def _op():
        _ensure_sku_available(sku)

        product = Product(
            sku=sku,
            name=name,
            description=description,
            barcode=barcode,
            price_cents=price_cents,
            cost_price_cents=cost_price_cents,
            stock=0,
            min_stock=min_stock,
            max_stock=max_stock,
            unit_of_measure=unit_of_measure or "pcs",
            status=status,
        )
        db.session.add(product)
        db.session.flush()

        if stock > 0:
            _apply_stock_movement_locked(
                product_id=product.id,
                movement_type=StockMovementType.IN,
                quantity=stock,
                reference=INITIAL_STOCK_REFERENCE,
                notes="Initial product stock entry",
                user_id=user_id,
                unit_cost_cents=cost_price_cents,
            )
        return product

    return run_atomic(_op)


def update_product(product_id: int, patch: dict) -> Product:
    """Update catalog fields. Any attempt to write stock is rejected."""
    if "stock" in patch:
        raise ValidationError(
            "stock cannot be updated directly; use a stock adjustment",
            details={"field": "stock"},
        )
    unknown = sorted(set(patch) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)

        min_stock = patch.get("min_stock", product.min_stock)
        max_stock = patch.get("max_stock", product.max_stock)
        if max_stock is not None and max_stock < min_stock:
            raise ValidationError("max_stock must be >= min_stock")

        for key, value in patch.items():
            setattr(product, key, value)
        db.session.flush()
        return product

    return run_atomic(_op)


def delete_product(product_id: int) -> None:
    """
    Remove a product that was never sold or stocked.

    Ledger rows and order lines keep a hard reference to their product, so a
    product with either is refused; retire it with status=DISCONTINUED instead.

    Raises:
        NotFoundError: product does not exist
        InvalidStateError: product has order items or stock movements
    """
    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)

        order_items = db.session.query(OrderItem.id).filter_by(product_id=product.id).count()
        movements = db.session.query(StockMovement.id).filter_by(product_id=product.id).count()
        if order_items or movements:
            raise InvalidStateError(
                "Cannot delete product with existing orders or stock history",
                current="IN_USE",
                attempted="DELETE",
                product_id=product.id,
                order_items=order_items,
                stock_movements=movements,
            )

        sku = product.sku
        db.session.delete(product)
        db.session.flush()
        return sku

    sku = run_atomic(_op)
    current_app.logger.info("Deleted product %d (%s)", product_id, sku)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def get_product_by_sku(sku: str) -> Product:
    product = db.session.query(Product).filter_by(sku=sku).first()
    if product is None:
        raise NotFoundError("Product", sku)
    return product


def get_product_detail(product_id: int, *, recent_movements: int = 10) -> dict:
    """Product with its most recent ledger entries."""
    product = get_product(product_id)
    movements = (
        product.stock_movements
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(recent_movements)
        .all()
    )
    data = product.to_dict()
    data["recent_movements"] = [m.to_dict() for m in movements]
    return data


def list_products(*, page: int = 1, limit: int = 10, status: ProductStatus | None = None) -> dict:
    q = db.session.query(Product)
    if status is not None:
        q = q.filter(Product.status == status)
    total = q.count()
    products = (
        q.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "data": products,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def list_low_stock_products() -> list[Product]:
    """Active products at or below a positive reorder point, lowest stock first."""
    return (
        db.session.query(Product)
        .filter(
            Product.min_stock > 0,
            Product.stock <= Product.min_stock,
            Product.status == ProductStatus.ACTIVE,
        )
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )
