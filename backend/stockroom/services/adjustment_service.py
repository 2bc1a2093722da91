# Overview: Service-layer operations for manual stock adjustments.

"""
STOCK ADJUSTMENTS SERVICE

Purpose:
- Manual, reason-coded stock corrections outside the order flow.
- Every adjustment writes exactly one StockMovement through the ledger and
  one InventoryAdjustment pointing at it, in the same transaction.

Rules:
- quantity must be a positive integer
- reason is required
- DECREASE cannot take stock below zero (InsufficientStockError, unchanged
  from the ledger); the product's min_stock is NOT an adjustment constraint
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import InventoryAdjustment, InventoryAdjustmentType, Product, StockMovement
from ..errors import NotFoundError, ValidationError
from .concurrency import run_atomic
from .ledger_service import _apply_stock_movement_locked


MANUAL_ADJUSTMENT_REFERENCE = "Manual Adjustment"


@dataclass(frozen=True)
class AdjustmentResult:
    product: Product
    adjustment: InventoryAdjustment
    movement: StockMovement


def adjust_stock(
    *,
    product_id: int,
    adjustment_type: InventoryAdjustmentType,
    quantity: int,
    reason: str,
    notes: str | None = None,
    user_id: int | None = None,
) -> AdjustmentResult:
    """
    Apply a manual adjustment with an immutable audit trail.

    increase -> IN movement, decrease -> OUT movement.
    """
    if not reason or not reason.strip():
        raise ValidationError("reason is required for stock adjustments")

    def _op():
        result = _apply_stock_movement_locked(
            product_id=product_id,
            movement_type=adjustment_type.movement_type,
            quantity=quantity,
            reference=MANUAL_ADJUSTMENT_REFERENCE,
            notes=reason,
            user_id=user_id,
        )

        adjustment = InventoryAdjustment(
            product_id=product_id,
            stock_movement_id=result.movement.id,
            adjustment_type=adjustment_type,
            quantity=quantity,
            reason=reason,
            notes=notes,
            user_id=user_id,
        )
        db.session.add(adjustment)
        db.session.flush()

        return AdjustmentResult(product=result.product, adjustment=adjustment, movement=result.movement)

    result = run_atomic(_op)
    current_app.logger.info(
        "Adjusted product %d: %s %d (%s)",
        product_id, adjustment_type.value, quantity, reason,
    )
    return result


def list_adjustments(product_id: int, *, limit: int = 50) -> list[InventoryAdjustment]:
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id)
    return (
        db.session.query(InventoryAdjustment)
        .filter_by(product_id=product_id)
        .order_by(InventoryAdjustment.id.desc())
        .limit(limit)
        .all()
    )
