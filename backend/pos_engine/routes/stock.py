# backend/pos_engine/routes/stock.py
from flask import Blueprint, request, jsonify, g, current_app
from ..extensions import db
from ..decorators import require_context, require_branch
from ..errors import CommerceError, error_response
from ..services import catalog_service, stock_ledger_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.route("/adjust", methods=["POST"])
@require_context
@require_branch
def adjust_stock():
    """
    Manual stock change at the selected branch.

    Request body:
    {
        "product_id": int,
        "movement_type": "RECEIVE|ISSUE|ADJUST|DAMAGE",
        "quantity": int,
        "reason": str (optional),
        "note": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    for field in ("product_id", "movement_type", "quantity"):
        if data.get(field) is None:
            return jsonify({"error": f"Missing required field: {field}"}), 400

    try:
        result = stock_ledger_service.adjust_stock(
            store_id=g.store_id,
            branch_id=g.branch_id,
            product_id=int(data["product_id"]),
            quantity=data["quantity"],
            kind=str(data["movement_type"]).upper(),
            actor=g.staff_id,
            reason=data.get("reason"),
            note=data.get("note"),
        )
        return jsonify(result), 200

    except CommerceError as e:
        db.session.rollback()
        return error_response(e)
    except (TypeError, ValueError):
        return jsonify({"error": "product_id must be an integer"}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Stock adjustment failed")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.route("/movements", methods=["GET"])
@require_context
@require_branch
def list_movements():
    movements = stock_ledger_service.list_movements(
        g.store_id,
        g.branch_id,
        product_id=request.args.get("product_id", type=int),
        limit=request.args.get("limit", default=100, type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return jsonify({"movements": movements}), 200


@stock_bp.route("/products", methods=["GET"])
@require_context
@require_branch
def list_branch_products():
    try:
        return jsonify({"products": catalog_service.list_branch_products(g.store_id, g.branch_id)}), 200
    except CommerceError as e:
        return error_response(e)
