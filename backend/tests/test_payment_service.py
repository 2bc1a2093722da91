from datetime import datetime

import pytest

from stockroom.extensions import db
from stockroom.errors import InvalidStateError, NotFoundError, OverPaymentError, ValidationError
from stockroom.models import ImmutableRecordError, OrderStatus, Payment, PaymentMethod
from stockroom.services.order_service import cancel_order, create_order, update_order_status
from stockroom.services.payment_service import add_payment, get_payment_summary, list_payments
from conftest import reload


@pytest.fixture
def order(make_product):
    product = make_product(stock=20, price_cents=2500)
    # 2 x 25.00 - 5.00 discount + 3.50 tax = 48.50
    return create_order(
        items=[{"product_id": product.id, "quantity": 2}],
        discount_cents=500,
        tax_cents=350,
    )


def test_partial_payment_keeps_order_pending(order):
    payment = add_payment(order.id, amount_cents=1000, payment_method=PaymentMethod.DEBIT_CARD, reference="TX-1")

    assert payment.payment_method is PaymentMethod.DEBIT_CARD
    assert payment.payment_date is not None
    summary = get_payment_summary(order.id)
    assert summary["total_paid_cents"] == 1000
    assert summary["remaining_amount_cents"] == 3850
    assert summary["is_paid"] is False
    assert reload(order).status is OrderStatus.PENDING
    assert reload(order).paid_date is None


def test_paying_exactly_the_remainder_marks_order_paid(order):
    add_payment(order.id, amount_cents=1850)

    add_payment(order.id, amount_cents=3000)

    summary = get_payment_summary(order.id)
    assert summary["remaining_amount_cents"] == 0
    assert summary["is_paid"] is True
    fresh = reload(order)
    assert fresh.status is OrderStatus.PROCESSING
    assert fresh.paid_date is not None


def test_one_cent_over_the_remainder_is_rejected(order):
    add_payment(order.id, amount_cents=1850)

    with pytest.raises(OverPaymentError) as exc:
        add_payment(order.id, amount_cents=3001)

    assert exc.value.details["remaining_cents"] == 3000
    assert exc.value.details["attempted_cents"] == 3001
    assert db.session.query(Payment).filter_by(order_id=order.id).count() == 1
    assert reload(order).status is OrderStatus.PENDING


def test_default_method_and_explicit_date(order):
    when = datetime(2024, 1, 2, 3, 4, 5)

    payment = add_payment(order.id, amount_cents=100, payment_date=when, notes="deposit", user_id=8)

    assert payment.payment_method is PaymentMethod.CASH
    assert payment.payment_date.replace(tzinfo=None) == when
    assert payment.created_by_user_id == 8


def test_payment_on_cancelled_order_rejected(order):
    cancel_order(order.id)

    with pytest.raises(InvalidStateError) as exc:
        add_payment(order.id, amount_cents=100)

    assert exc.value.details["current"] == "CANCELLED"
    assert exc.value.details["attempted"] == "PAYMENT"


def test_payment_on_refunded_order_rejected(order):
    update_order_status(order.id, status=OrderStatus.REFUNDED)

    with pytest.raises(InvalidStateError):
        add_payment(order.id, amount_cents=100)


def test_paid_processing_order_is_not_moved_backwards(order):
    add_payment(order.id, amount_cents=4850)
    update_order_status(order.id, status=OrderStatus.SHIPPED)

    with pytest.raises(OverPaymentError):
        add_payment(order.id, amount_cents=1)

    assert reload(order).status is OrderStatus.SHIPPED


@pytest.mark.parametrize("amount", [0, -5, True])
def test_amount_must_be_positive_integer(order, amount):
    with pytest.raises(ValidationError):
        add_payment(order.id, amount_cents=amount)


def test_unknown_order(db_session):
    with pytest.raises(NotFoundError):
        add_payment(999, amount_cents=100)
    with pytest.raises(NotFoundError):
        get_payment_summary(999)
    with pytest.raises(NotFoundError):
        list_payments(999)


def test_payments_are_append_only(order):
    payment = add_payment(order.id, amount_cents=100)

    payment.amount_cents = 200
    with pytest.raises(ImmutableRecordError):
        db.session.flush()
    db.session.rollback()

    assert [p.amount_cents for p in list_payments(order.id)] == [100]
