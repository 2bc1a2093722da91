# Overview: Flask API routes for payments; parses input and returns JSON responses.

# backend/stockroom/routes/payments.py
"""
Payment routes.

Payments are append-only. There is no void or edit endpoint: a mistaken
payment is corrected outside this service.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockroomError
from ..services import payment_service
from ..validation import validate_payment_payload
from ..decorators import with_actor


payments_bp = Blueprint("payments", __name__, url_prefix="/api/orders")


@payments_bp.post("/<int:order_id>/payments")
@with_actor
def add_payment_route(order_id: int):
    """
    Record a payment against an order.

    Body: {"amount_cents": int, "payment_method"?: str, "payment_date"?: ISO-8601,
           "reference"?: str, "notes"?: str}

    PAYMENT METHODS: CASH (default), CREDIT_CARD, DEBIT_CARD, BANK_TRANSFER,
    DIGITAL_WALLET, CHECK

    Returns:
        201: payment and updated summary
        400: invalid input
        404: order not found
        409: over-payment, or the order is cancelled/refunded
    """
    payload = request.get_json(silent=True)

    try:
        data = validate_payment_payload(payload)
        payment = payment_service.add_payment(order_id, user_id=g.actor_user_id, **data)
        summary = payment_service.get_payment_summary(order_id)
        return jsonify({
            "payment": payment.to_dict(),
            "summary": summary,
        }), 201
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/<int:order_id>/payments")
def list_payments_route(order_id: int):
    try:
        payments = payment_service.list_payments(order_id)
        return jsonify({"data": [p.to_dict() for p in payments]}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/<int:order_id>/payment-summary")
def payment_summary_route(order_id: int):
    try:
        return jsonify(payment_service.get_payment_summary(order_id)), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load payment summary")
        return jsonify({"error": "Internal server error"}), 500
