# backend/pos_engine/routes/orders.py
"""
Sales order API routes.

Orders are recorded against the branch's current shift.
"""
from flask import Blueprint, request, jsonify, g, current_app
from ..extensions import db
from ..decorators import require_context, require_branch
from ..errors import CommerceError, error_response
from ..services import order_service, shift_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("", methods=["POST"])
@require_context
@require_branch
def create_order():
    """
    Record a paid sale.

    Request body:
    {
        "items": [{"product_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "payments": [{"method": "CASH|TRANSFER|QR|CARD|OTHER", "amount_cents": int}],
        "discount_total_cents": int (optional),
        "customer_id": int (optional),
        "promotion_id": int (optional)
    }

    Returns:
        201: Order created
        400: Invalid request
        404: Unknown product/customer/promotion
        409: No open shift
        422: Payment does not cover the total
    """
    data = request.get_json(silent=True) or {}

    try:
        shift = shift_service.require_current_shift(g.store_id, g.branch_id)
        order = order_service.create_order(
            store_id=g.store_id,
            branch_id=g.branch_id,
            shift_id=shift.id,
            staff_id=g.staff_id,
            items=data.get("items"),
            payments=data.get("payments"),
            discount_total_cents=data.get("discount_total_cents"),
            customer_id=data.get("customer_id"),
            promotion_id=data.get("promotion_id"),
        )
        return jsonify(order.to_dict()), 201

    except CommerceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.route("", methods=["GET"])
@require_context
@require_branch
def list_orders():
    """Orders of the current shift, newest first."""
    try:
        shift = shift_service.require_current_shift(g.store_id, g.branch_id)
        orders = order_service.list_orders_by_shift(g.store_id, g.branch_id, shift.id)
        return jsonify({
            "shift_id": shift.id,
            "orders": [o.to_dict(include_lines=False) for o in orders],
        }), 200
    except CommerceError as e:
        return error_response(e)


@orders_bp.route("/<int:order_id>", methods=["GET"])
@require_context
def get_order(order_id: int):
    try:
        return jsonify(order_service.get_order(g.store_id, order_id).to_dict()), 200
    except CommerceError as e:
        return error_response(e)


@orders_bp.route("/<int:order_id>/cancel", methods=["POST"])
@require_context
def cancel_order(order_id: int):
    """
    Cancel a paid order and return its stock.

    Request body:
    {
        "reason": str (optional)
    }

    Returns:
        200: Order cancelled
        404: Order not found
        409: Order already cancelled
    """
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.cancel_order(
            store_id=g.store_id,
            order_id=order_id,
            reason=data.get("reason"),
            actor=g.staff_id,
        )
        return jsonify(order.to_dict()), 200

    except CommerceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500
