# backend/pos_engine/routes/shifts.py
"""
Shift lifecycle API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app
from ..extensions import db
from ..decorators import require_context, require_branch
from ..errors import CommerceError, error_response
from ..services import shift_service


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.route("/open", methods=["POST"])
@require_context
@require_branch
def open_shift():
    """
    Open a shift on the selected branch.

    Request body:
    {
        "starting_cash_cents": int
    }

    Returns:
        201: Shift opened
        400: Invalid request
        409: Branch already has an open shift
    """
    data = request.get_json(silent=True) or {}

    try:
        shift = shift_service.open_shift(
            store_id=g.store_id,
            branch_id=g.branch_id,
            staff_id=g.staff_id,
            starting_cash_cents=data.get("starting_cash_cents", 0),
        )
        return jsonify(shift.to_dict()), 201

    except CommerceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.route("/current", methods=["GET"])
@require_context
@require_branch
def current_shift():
    """Return the active shift, or {"shift": null} when the branch is closed."""
    shift = shift_service.get_current_shift(g.store_id, g.branch_id)
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.route("/summary", methods=["GET"])
@require_context
@require_branch
def shift_summary():
    try:
        return jsonify(shift_service.get_shift_summary(g.store_id, g.branch_id)), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build shift summary")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.route("/close", methods=["POST"])
@require_context
@require_branch
def close_shift():
    """
    Close the active shift and reconcile the drawer.

    Request body:
    {
        "actual_cash_cents": int,
        "note": str (optional),
        "stock_counts": [{"product_id": int, "actual_quantity": int}] (optional)
    }

    Returns:
        200: Closing snapshot with expected cash and variance
        400: Invalid request
        409: No open shift
    """
    data = request.get_json(silent=True) or {}

    if "actual_cash_cents" not in data:
        return jsonify({"error": "Missing required field: actual_cash_cents"}), 400

    try:
        result = shift_service.close_shift(
            store_id=g.store_id,
            branch_id=g.branch_id,
            staff_id=g.staff_id,
            actual_cash_cents=data["actual_cash_cents"],
            note=data.get("note"),
            stock_counts=data.get("stock_counts"),
        )
        return jsonify(result), 200

    except CommerceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500
