import pytest

from stockroom.extensions import db
from stockroom.errors import InsufficientStockError, NotFoundError, ValidationError
from stockroom.models import InventoryAdjustment, InventoryAdjustmentType, StockMovement, StockMovementType
from stockroom.services.adjustment_service import adjust_stock, list_adjustments
from conftest import stock_of


def test_increase_writes_adjustment_and_matching_movement(make_product):
    product = make_product(stock=2)

    result = adjust_stock(
        product_id=product.id,
        adjustment_type=InventoryAdjustmentType.INCREASE,
        quantity=5,
        reason="Cycle count",
        notes="Found behind shelf",
        user_id=11,
    )

    assert result.product.stock == 7
    assert result.movement.movement_type is StockMovementType.IN
    assert result.movement.reference == "Manual Adjustment"
    assert result.movement.notes == "Cycle count"
    assert result.adjustment.stock_movement_id == result.movement.id
    assert result.adjustment.quantity == result.movement.quantity == 5
    assert result.adjustment.user_id == result.movement.user_id == 11
    assert result.adjustment.notes == "Found behind shelf"


def test_decrease_maps_to_out_movement(make_product):
    product = make_product(stock=9)

    result = adjust_stock(
        product_id=product.id,
        adjustment_type=InventoryAdjustmentType.DECREASE,
        quantity=4,
        reason="Shrinkage",
    )

    assert result.movement.movement_type is StockMovementType.OUT
    assert (result.movement.previous_stock, result.movement.new_stock) == (9, 5)


def test_decrease_past_zero_leaves_no_trace(make_product):
    product = make_product(stock=3)
    movements_before = db.session.query(StockMovement).count()

    with pytest.raises(InsufficientStockError):
        adjust_stock(
            product_id=product.id,
            adjustment_type=InventoryAdjustmentType.DECREASE,
            quantity=4,
            reason="Write-off",
        )

    assert stock_of(product) == 3
    assert db.session.query(StockMovement).count() == movements_before
    assert db.session.query(InventoryAdjustment).count() == 0


def test_reason_is_required(make_product):
    product = make_product(stock=3)

    with pytest.raises(ValidationError):
        adjust_stock(
            product_id=product.id,
            adjustment_type=InventoryAdjustmentType.INCREASE,
            quantity=1,
            reason="   ",
        )


def test_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        adjust_stock(
            product_id=77,
            adjustment_type=InventoryAdjustmentType.INCREASE,
            quantity=1,
            reason="Receiving",
        )


def test_adjustments_listed_newest_first(make_product):
    product = make_product(stock=0)
    for qty in (1, 2, 3):
        adjust_stock(
            product_id=product.id,
            adjustment_type=InventoryAdjustmentType.INCREASE,
            quantity=qty,
            reason=f"Receiving {qty}",
        )

    assert [a.quantity for a in list_adjustments(product.id)] == [3, 2, 1]
