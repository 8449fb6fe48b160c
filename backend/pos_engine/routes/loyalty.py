# backend/pos_engine/routes/loyalty.py
from flask import Blueprint, request, jsonify, g, current_app
from ..extensions import db
from ..decorators import require_context, require_branch
from ..errors import CommerceError, error_response
from ..services import loyalty_service


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.route("/customers/<int:customer_id>/points", methods=["GET"])
@require_context
def customer_points(customer_id: int):
    try:
        return jsonify(loyalty_service.get_customer_points(g.store_id, customer_id)), 200
    except CommerceError as e:
        return error_response(e)


@loyalty_bp.route("/customers/<int:customer_id>/history", methods=["GET"])
@require_context
def point_history(customer_id: int):
    try:
        history = loyalty_service.get_point_history(
            g.store_id,
            customer_id,
            limit=request.args.get("limit", default=50, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
        return jsonify({"transactions": history}), 200
    except CommerceError as e:
        return error_response(e)


@loyalty_bp.route("/redeem", methods=["POST"])
@require_context
@require_branch
def redeem_points():
    """
    Spend a customer's points on a product.

    Request body:
    {
        "customer_id": int,
        "product_id": int,
        "quantity": int
    }

    Returns:
        200: Redemption recorded
        400: Invalid request or product not redeemable
        404: Unknown customer or product
        422: Not enough points
    """
    data = request.get_json(silent=True) or {}

    for field in ("customer_id", "product_id"):
        if data.get(field) is None:
            return jsonify({"error": f"Missing required field: {field}"}), 400

    try:
        result = loyalty_service.redeem_points(
            store_id=g.store_id,
            branch_id=g.branch_id,
            customer_id=int(data["customer_id"]),
            product_id=int(data["product_id"]),
            quantity=data.get("quantity", 1),
            staff_id=g.staff_id,
        )
        return jsonify(result), 200

    except CommerceError as e:
        db.session.rollback()
        return error_response(e)
    except (TypeError, ValueError):
        return jsonify({"error": "customer_id and product_id must be integers"}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Point redemption failed")
        return jsonify({"error": "Internal server error"}), 500
