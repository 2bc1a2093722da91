# Overview: Flask API routes for products and stock adjustments; parses input and returns JSON responses.

# backend/stockroom/routes/products.py
"""
Product catalog and stock adjustment routes.

Stock is never written through these catalog endpoints: creation books the
initial quantity through the ledger, updates reject `stock`, and every later
change goes through POST /<id>/adjust-stock.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Product, ProductStatus, coerce_enum_value
from ..errors import StockroomError, ValidationError
from ..services import products_service, adjustment_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    validate_adjustment_payload,
)
from ..decorators import with_actor, pagination_args

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "barcode",
        "price_cents", "cost_price_cents",
        "stock", "min_stock", "max_stock",
        "unit_of_measure", "status",
    },
    required_on_create={"sku", "name", "price_cents", "cost_price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _status_arg():
    raw = request.args.get("status")
    if not raw:
        return None
    try:
        return coerce_enum_value(ProductStatus, raw)
    except ValueError as exc:
        raise ValidationError(str(exc))


@products_bp.get("")
def list_products():
    """
    List products, newest first.

    Query params:
    - page, limit: pagination (limit capped at MAX_PAGE_SIZE)
    - status: ACTIVE | INACTIVE | DISCONTINUED
    """
    try:
        page, limit = pagination_args()
        result = products_service.list_products(page=page, limit=limit, status=_status_arg())
        return jsonify({
            "data": [p.to_dict() for p in result["data"]],
            "meta": result["meta"],
        }), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@with_actor
def create_product_route():
    """
    Create a product. A positive `stock` becomes one "Initial Stock" IN
    movement in the ledger.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(user_id=g.actor_user_id, **patch)
        return jsonify(product.to_dict()), 201
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/low-stock")
def low_stock_products():
    """Active products with 0 < min_stock and stock <= min_stock."""
    try:
        products = products_service.list_low_stock_products()
        return jsonify({"data": [p.to_dict() for p in products]}), 200
    except Exception:
        current_app.logger.exception("Failed to list low-stock products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/by-sku/<string:sku>")
def get_product_by_sku(sku: str):
    try:
        return jsonify(products_service.get_product_by_sku(sku).to_dict()), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load product by SKU")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    """Product with its 10 most recent stock movements."""
    try:
        return jsonify(products_service.get_product_detail(product_id)), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        if "stock" in payload:
            raise ValidationError(
                "stock cannot be updated directly; use a stock adjustment",
                details={"field": "stock"},
            )
        if "sku" in payload:
            raise ValidationError("sku cannot be changed", details={"field": "sku"})
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(product_id, patch)
        return jsonify(product.to_dict()), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Only products with no orders and no stock history can be deleted."""
    try:
        products_service.delete_product(product_id)
        return jsonify({"ok": True}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/adjust-stock")
@with_actor
def adjust_stock_route(product_id: int):
    """
    Manual stock adjustment.

    Body: {"type": "INCREASE"|"DECREASE", "quantity": int, "reason": str, "notes"?: str}

    Returns:
        200: updated product plus the adjustment and its ledger entry
        400: invalid input
        404: product not found
        409: insufficient stock for a decrease
    """
    payload = request.get_json(silent=True)

    try:
        data = validate_adjustment_payload(payload)
        result = adjustment_service.adjust_stock(
            product_id=product_id,
            user_id=g.actor_user_id,
            **data,
        )
        return jsonify({
            "product": result.product.to_dict(),
            "adjustment": result.adjustment.to_dict(),
            "movement": result.movement.to_dict(),
        }), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/adjustments")
def list_adjustments_route(product_id: int):
    try:
        adjustments = adjustment_service.list_adjustments(product_id)
        return jsonify({"data": [a.to_dict() for a in adjustments]}), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list adjustments")
        return jsonify({"error": "Internal server error"}), 500
