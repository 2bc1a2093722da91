# Overview: Service-layer operations for the stock ledger; the single writer of Product.stock.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Product, StockMovement, StockMovementType
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_atomic
"""
Stock Ledger Invariants (authoritative)

- Product.stock is a projection; StockMovement rows are the audit trail.
- apply_stock_movement is the ONLY code path that writes Product.stock.
- The stock write and its StockMovement append happen in one transaction:
  never one without the other.
- Stock never goes negative. OUT movements re-check sufficiency against the
  value read under the write lock, not against anything read earlier.
- Movements are append-only. For one product, scanning rows by id gives
  commit order, and previous_stock[n+1] == new_stock[n].
"""


@dataclass(frozen=True)
class MovementResult:
    product: Product
    movement: StockMovement


def _load_product_locked(product_id: int) -> Product:
    # populate_existing: another writer may have committed since this
    # session last loaded the row
    product = (
        lock_for_update(db.session.query(Product).filter_by(id=product_id))
        .populate_existing()
        .first()
    )
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def _apply_stock_movement_locked(
    *,
    product_id: int,
    movement_type: StockMovementType,
    quantity: int,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    unit_cost_cents: int | None = None,
) -> MovementResult:
    """Core ledger logic without transaction begin/commit.

    Called inside an enclosing atomic unit (adjustments, orders, product
    creation) or through the public apply_stock_movement().
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"quantity": quantity})

    product = _load_product_locked(product_id)
    previous = product.stock

    if movement_type is StockMovementType.IN:
        new_stock = previous + quantity
    elif movement_type is StockMovementType.OUT:
        new_stock = previous - quantity
        if new_stock < 0:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=previous,
                requested=quantity,
            )
    else:
        raise ValidationError(f"Unsupported movement type: {movement_type!r}")

    product.stock = new_stock

    movement = StockMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous,
        new_stock=new_stock,
        unit_cost_cents=unit_cost_cents,
        reference=reference,
        notes=notes,
        user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()  # assigns movement.id and bumps product.version_id

    return MovementResult(product=product, movement=movement)


def apply_stock_movement(
    *,
    product_id: int,
    movement_type: StockMovementType,
    quantity: int,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    unit_cost_cents: int | None = None,
) -> MovementResult:
    """
    Apply one stock movement as its own atomic unit.

    Returns the updated Product and the created StockMovement.

    Raises:
        NotFoundError: product does not exist
        InsufficientStockError: OUT would drive stock negative
        TransactionConflictError: commit failed after bounded retries
    """
    result = run_atomic(lambda: _apply_stock_movement_locked(
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        reference=reference,
        notes=notes,
        user_id=user_id,
        unit_cost_cents=unit_cost_cents,
    ))
    current_app.logger.info(
        "Stock %s %d for product %d (%d -> %d) ref=%r",
        movement_type.value, quantity, product_id,
        result.movement.previous_stock, result.movement.new_stock, reference,
    )
    return result


def list_stock_movements(*, product_id: int | None = None, page: int = 1, limit: int = 20) -> dict:
    """Paginated stock movement history, newest first."""
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")

    q = db.session.query(StockMovement)
    if product_id:
        if db.session.get(Product, product_id) is None:
            raise NotFoundError("Product", product_id)
        q = q.filter(StockMovement.product_id == product_id)

    total = q.count()
    movements = (
        q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "data": movements,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def verify_stock_history(product_id: int) -> dict:
    """
    Replay a product's movements in commit order and check the chain.

    Reports every break where a movement's previous_stock does not equal the
    prior movement's new_stock (the first movement must start at 0), every
    row whose arithmetic does not reconcile, and whether the final
    new_stock equals the product's current stock.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)

    movements = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )

    breaks = []
    running = 0
    for mv in movements:
        if mv.previous_stock != running:
            breaks.append({
                "movement_id": mv.id,
                "problem": "chain_break",
                "expected_previous_stock": running,
                "previous_stock": mv.previous_stock,
            })
        sign = 1 if mv.movement_type is StockMovementType.IN else -1
        if mv.new_stock != mv.previous_stock + sign * mv.quantity:
            breaks.append({
                "movement_id": mv.id,
                "problem": "arithmetic",
                "previous_stock": mv.previous_stock,
                "quantity": mv.quantity,
                "new_stock": mv.new_stock,
            })
        running = mv.new_stock

    return {
        "product_id": product.id,
        "movement_count": len(movements),
        "replayed_stock": running,
        "current_stock": product.stock,
        "breaks": breaks,
        "reconciles": not breaks and running == product.stock,
    }
