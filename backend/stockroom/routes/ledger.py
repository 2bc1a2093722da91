# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import StockroomError
from ..services import ledger_service
from ..decorators import pagination_args

"""
Ledger semantics:
- Movements are append-only; listing is newest first.
- productId filter is optional; an unknown product is a 404, not an empty page.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/stock-movements")
def list_stock_movements_route():
    product_id = request.args.get("productId", type=int)
    if product_id is None:
        product_id = request.args.get("product_id", type=int)

    try:
        page, limit = pagination_args()
        result = ledger_service.list_stock_movements(product_id=product_id, page=page, limit=limit)
        return jsonify({
            "data": [m.to_dict() for m in result["data"]],
            "meta": result["meta"],
        }), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/products/<int:product_id>/verify")
def verify_product_ledger(product_id: int):
    """Replay a product's movements and report whether they reconcile with its stock."""
    try:
        report = ledger_service.verify_stock_history(product_id)
        if not report["reconciles"]:
            current_app.logger.warning("Ledger for product %d does not reconcile: %s", product_id, report)
        return jsonify(report), 200
    except StockroomError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify ledger")
        return jsonify({"error": "Internal server error"}), 500
