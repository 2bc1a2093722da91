import pytest

from stockroom.extensions import db
from stockroom.errors import InsufficientStockError, NotFoundError, ValidationError
from stockroom.models import ImmutableRecordError, StockMovement, StockMovementType
from stockroom.services.ledger_service import (
    apply_stock_movement,
    list_stock_movements,
    verify_stock_history,
)
from conftest import stock_of


def test_in_movement_records_before_and_after(make_product):
    product = make_product(stock=5)

    result = apply_stock_movement(
        product_id=product.id,
        movement_type=StockMovementType.IN,
        quantity=7,
        reference="PO-42",
        notes="restock",
        user_id=9,
        unit_cost_cents=350,
    )

    assert result.product.stock == 12
    mv = result.movement
    assert (mv.previous_stock, mv.new_stock, mv.quantity) == (5, 12, 7)
    assert mv.reference == "PO-42"
    assert mv.user_id == 9
    assert mv.unit_cost_cents == 350
    assert stock_of(product) == 12


def test_out_movement_cannot_go_negative(make_product):
    product = make_product(stock=3)
    before = db.session.query(StockMovement).filter_by(product_id=product.id).count()

    with pytest.raises(InsufficientStockError) as exc:
        apply_stock_movement(product_id=product.id, movement_type=StockMovementType.OUT, quantity=4)

    assert exc.value.details["available"] == 3
    assert exc.value.details["requested"] == 4
    assert exc.value.details["product_name"] == product.name
    assert stock_of(product) == 3
    assert db.session.query(StockMovement).filter_by(product_id=product.id).count() == before


def test_out_movement_to_exactly_zero(make_product):
    product = make_product(stock=3)

    result = apply_stock_movement(product_id=product.id, movement_type=StockMovementType.OUT, quantity=3)

    assert result.movement.new_stock == 0
    assert stock_of(product) == 0


@pytest.mark.parametrize("quantity", [0, -1, True, 2.5])
def test_non_positive_or_non_integer_quantity_rejected(make_product, quantity):
    product = make_product(stock=3)

    with pytest.raises(ValidationError):
        apply_stock_movement(product_id=product.id, movement_type=StockMovementType.IN, quantity=quantity)

    assert stock_of(product) == 3


def test_unknown_product_is_not_found(db_session):
    with pytest.raises(NotFoundError) as exc:
        apply_stock_movement(product_id=999, movement_type=StockMovementType.IN, quantity=1)

    assert exc.value.details == {"entity": "Product", "id": 999}


def test_movements_are_append_only(make_product):
    product = make_product(stock=2)
    movement = db.session.query(StockMovement).filter_by(product_id=product.id).one()

    movement.notes = "rewritten"
    with pytest.raises(ImmutableRecordError):
        db.session.flush()
    db.session.rollback()

    db.session.delete(db.session.get(StockMovement, movement.id))
    with pytest.raises(ImmutableRecordError):
        db.session.flush()
    db.session.rollback()


def test_history_is_paginated_newest_first(make_product):
    product = make_product(stock=10)
    other = make_product(stock=1)
    for _ in range(4):
        apply_stock_movement(product_id=product.id, movement_type=StockMovementType.OUT, quantity=1)

    first_page = list_stock_movements(product_id=product.id, page=1, limit=2)
    second_page = list_stock_movements(product_id=product.id, page=2, limit=2)
    everything = list_stock_movements(page=1, limit=50)

    assert first_page["meta"] == {"total": 5, "page": 1, "limit": 2, "total_pages": 3}
    ids = [m.id for m in first_page["data"] + second_page["data"]]
    assert ids == sorted(ids, reverse=True)
    assert all(m.product_id == product.id for m in first_page["data"])
    assert everything["meta"]["total"] == 6
    assert other.id in {m.product_id for m in everything["data"]}


def test_history_for_unknown_product_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        list_stock_movements(product_id=12345)


def test_replaying_movements_reproduces_current_stock(make_product):
    product = make_product(stock=10)
    apply_stock_movement(product_id=product.id, movement_type=StockMovementType.OUT, quantity=4)
    apply_stock_movement(product_id=product.id, movement_type=StockMovementType.IN, quantity=2)
    apply_stock_movement(product_id=product.id, movement_type=StockMovementType.OUT, quantity=8)

    report = verify_stock_history(product.id)

    assert report["reconciles"] is True
    assert report["movement_count"] == 4
    assert report["replayed_stock"] == report["current_stock"] == 0
    assert report["breaks"] == []

    chain = (
        db.session.query(StockMovement)
        .filter_by(product_id=product.id)
        .order_by(StockMovement.id)
        .all()
    )
    assert chain[0].previous_stock == 0
    for earlier, later in zip(chain, chain[1:]):
        assert later.previous_stock == earlier.new_stock
