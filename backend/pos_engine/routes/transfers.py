# backend/pos_engine/routes/transfers.py
"""
Stock transfer API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app
from ..extensions import db
from ..decorators import require_context, require_branch
from ..errors import CommerceError, error_response
from ..services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


def _handle(action: str, func):
    try:
        return func()
    except CommerceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Transfer %s failed", action)
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("", methods=["POST"])
@require_context
def create_transfer():
    """
    Create a transfer request (status: CREATED).

    Request body:
    {
        "to_branch_id": int,
        "from_branch_id": int (optional, null = central warehouse),
        "items": [{"product_id": int, "send_count": int}],
        "note": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request
        404: Unknown branch or product
    """
    data = request.get_json(silent=True) or {}

    if data.get("to_branch_id") is None:
        return jsonify({"error": "Missing required field: to_branch_id"}), 400

    def _create():
        transfer = transfer_service.create_transfer(
            store_id=g.store_id,
            to_branch_id=data["to_branch_id"],
            items=data.get("items"),
            from_branch_id=data.get("from_branch_id"),
            requested_by=g.staff_id,
            note=data.get("note"),
        )
        return jsonify(transfer.to_dict()), 201

    return _handle("create", _create)


@transfers_bp.route("/withdraw", methods=["POST"])
@require_context
@require_branch
def withdraw_goods():
    """Request stock from the central warehouse into the selected branch."""
    data = request.get_json(silent=True) or {}

    def _withdraw():
        transfer = transfer_service.withdraw_goods(
            store_id=g.store_id,
            branch_id=g.branch_id,
            items=data.get("items"),
            staff_id=g.staff_id,
            note=data.get("note"),
        )
        return jsonify(transfer.to_dict()), 201

    return _handle("withdraw", _withdraw)


@transfers_bp.route("", methods=["GET"])
@require_context
def list_transfers():
    """Transfers involving the selected branch (all branches when none is selected)."""
    limit = request.args.get("limit", type=int)
    offset = request.args.get("offset", default=0, type=int)
    return jsonify(transfer_service.list_transfers(g.store_id, g.branch_id, limit=limit, offset=offset)), 200


@transfers_bp.route("/pending", methods=["GET"])
@require_context
@require_branch
def list_pending_transfers():
    transfers = transfer_service.list_pending_transfers(g.store_id, g.branch_id)
    return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
@require_context
def get_transfer(transfer_id: int):
    try:
        return jsonify(transfer_service.get_transfer(g.store_id, transfer_id).to_dict()), 200
    except CommerceError as e:
        return error_response(e)


@transfers_bp.route("/<int:transfer_id>/send", methods=["POST"])
@require_context
def send_transfer(transfer_id: int):
    """
    Send a transfer (CREATED -> SENT).
    Deducts source branch stock unless the source is the central warehouse.
    """
    def _send():
        transfer = transfer_service.send_transfer(g.store_id, transfer_id, g.staff_id)
        return jsonify(transfer.to_dict()), 200

    return _handle("send", _send)


@transfers_bp.route("/<int:transfer_id>/receive", methods=["POST"])
@require_context
@require_branch
def receive_transfer(transfer_id: int):
    """
    Receive a transfer at the selected (destination) branch.

    Request body:
    {
        "items": [{"item_id": int | "product_id": int, "receive_count": int}] (optional)
    }

    Returns:
        200: Transfer received
        400: Invalid request
        404: Transfer not found
        409: Transfer not in SENT state or wrong branch
    """
    data = request.get_json(silent=True) or {}

    def _receive():
        transfer = transfer_service.receive_transfer(
            store_id=g.store_id,
            branch_id=g.branch_id,
            transfer_id=transfer_id,
            items=data.get("items"),
            staff_id=g.staff_id,
        )
        return jsonify(transfer.to_dict()), 200

    return _handle("receive", _receive)


@transfers_bp.route("/<int:transfer_id>/cancel", methods=["POST"])
@require_context
def cancel_transfer(transfer_id: int):
    def _cancel():
        transfer = transfer_service.cancel_transfer(g.store_id, transfer_id, g.staff_id)
        return jsonify(transfer.to_dict()), 200

    return _handle("cancel", _cancel)
