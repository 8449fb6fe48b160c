# backend/pos_engine/routes/promotions.py
from flask import Blueprint, request, jsonify, g, current_app
from ..extensions import db
from ..decorators import require_context, require_branch
from ..errors import CommerceError, ValidationError, error_response
from ..services import promotions_service


promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promotions")


@promotions_bp.route("", methods=["GET"])
@require_context
@require_branch
def list_promotions():
    """Active promotions for the selected branch."""
    promotions = promotions_service.list_active_promotions(g.store_id, g.branch_id)
    return jsonify({"promotions": [p.to_dict() for p in promotions]}), 200


@promotions_bp.route("", methods=["POST"])
@require_context
def create_promotion():
    data = request.get_json(silent=True) or {}
    try:
        promotion = promotions_service.create_promotion(g.store_id, data)
        return jsonify(promotion.to_dict()), 201
    except CommerceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.route("/calculate", methods=["POST"])
@require_context
def calculate_discount():
    """
    Evaluate one promotion against a cart.

    Request body:
    {
        "promotion_id": int,
        "items": [{"product_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "subtotal_cents": int (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("promotion_id") is None:
            raise ValidationError("promotion_id is required", details={"field": "promotion_id"})
        lines = promotions_service.build_cart_lines(g.store_id, data.get("items"))
        result = promotions_service.calculate_discount(
            g.store_id,
            int(data["promotion_id"]),
            lines,
            subtotal_cents=data.get("subtotal_cents"),
        )
        return jsonify(result), 200
    except CommerceError as e:
        return error_response(e)
    except (TypeError, ValueError):
        return jsonify({"error": "promotion_id and subtotal_cents must be integers"}), 400


@promotions_bp.route("/detect", methods=["POST"])
@require_context
@require_branch
def detect_promotions():
    """Promotions that would discount the given cart at this branch."""
    data = request.get_json(silent=True) or {}

    try:
        lines = promotions_service.build_cart_lines(g.store_id, data.get("items"))
        results = promotions_service.detect_applicable(g.store_id, g.branch_id, lines)
        return jsonify({"promotions": results}), 200
    except CommerceError as e:
        return error_response(e)
