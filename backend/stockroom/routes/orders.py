# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order routes.

Create and cancel are single atomic units in the service layer: a 4xx/409
from either means nothing was written. Conflicts flagged `retryable` in the
error body (transaction_conflict, constraint_violation) may be resubmitted.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import OrderStatus, coerce_enum_value
from ..errors import StockroomError, ValidationError
from ..services import order_service
from ..validation import validate_order_payload, coerce_datetime
from ..decorators import with_actor, pagination_args


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _parse_status(raw):
    try:
        return coerce_enum_value(OrderStatus, raw)
    except ValueError as exc:
        raise ValidationError(str(exc))


@orders_bp.post("")
@with_actor
def create_order_route():
    """
    Create an order.

    Body:
        {
          "customer_id"?: int,
          "items": [{"product_id": int, "quantity": int, "unit_price_cents"?: int}],
          "discount_cents"?: int, "tax_cents"?: int, "notes"?: str
        }

    Returns:
        201: order with items
        400: invalid input
        404: customer or product not found
        409: insufficient stock, inactive product, or a retryable conflict
    """
    payload = request.get_json(silent=True)

    try:
        data = validate_order_payload(payload)
        order = order_service.create_order(user_id=g.actor_user_id, **data)
        return jsonify(order.to_dict()), 201
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
def list_orders_route():
    try:
        page, limit = pagination_args()
        raw_status = request.args.get("status")
        status = _parse_status(raw_status) if raw_status else None
        result = order_service.list_orders(page=page, limit=limit, status=status)
        return jsonify({
            "data": [o.to_dict(include_items=False) for o in result["data"]],
            "meta": result["meta"],
        }), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    """Order with items, payments and a freshly computed payment summary."""
    try:
        return jsonify(order_service.get_order_detail(order_id)), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@with_actor
def cancel_order_route(order_id: int):
    try:
        order = order_service.cancel_order(order_id, user_id=g.actor_user_id)
        return jsonify({
            "message": f"Order {order.order_number} cancelled",
            "order": order.to_dict(),
        }), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
def update_order_status_route(order_id: int):
    """
    Body: {"status"?: "SHIPPED"|"DELIVERED"|"REFUNDED"|..., "due_date"?: ISO-8601}

    Cancellation is rejected here; use POST /<id>/cancel so stock is restored.
    """
    payload = request.get_json(silent=True) or {}

    try:
        unknown = sorted(set(payload) - {"status", "due_date"})
        if unknown:
            raise ValidationError(f"Field not allowed: {unknown[0]}")
        if payload.get("status") is None and payload.get("due_date") is None:
            raise ValidationError("status or due_date is required")

        status = _parse_status(payload["status"]) if payload.get("status") is not None else None
        due_date = coerce_datetime("due_date", payload["due_date"]) if payload.get("due_date") is not None else None

        order = order_service.update_order_status(order_id, status=status, due_date=due_date)
        return jsonify(order.to_dict()), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
