# Overview: Stock transfer state machine between branches (or from the central warehouse).

"""
Stock transfers.

LIFECYCLE:
1. CREATED: request recorded with send counts; no stock moves
2. SENT: source branch stock deducted (TRANSFER_OUT); skipped for the
   central warehouse (from_branch_id NULL)
3. RECEIVED: destination stock added by the counted receive quantities
   (TRANSFER_IN). Terminal.
4. CANCELLED: from CREATED or SENT. Cancelling after SENT returns what the
   send actually removed to the source branch. Terminal.

Each transition is one atomic unit: status flip and every ledger write
commit together or not at all.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidTransferState, NotFound, ValidationError
from ..extensions import db
from ..models import StockMovement, StockTransfer, StockTransferItem
from ..models.inventory import MOVEMENT_TRANSFER_IN, MOVEMENT_TRANSFER_OUT
from ..models.transfers import (
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_CREATED,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_SENT,
)
from ..time_utils import utcnow
from .catalog_service import get_branch, get_products
from .concurrency import STOCK_RETRYABLE_ERRORS, lock_for_update, run_atomic
from .stock_ledger_service import adjust


TRANSFER_REFERENCE = "stock_transfers"


def _as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={"field": field})


def _parse_send_items(store_id: int, items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Transfer must contain at least one item", details={"field": "items"})

    parsed = []
    seen = set()
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{idx}] must be an object", details={"index": idx})
        product_id = _as_int(item.get("product_id"), f"items[{idx}].product_id")
        send_count = _as_int(item.get("send_count", item.get("quantity")), f"items[{idx}].send_count")
        if send_count <= 0:
            raise ValidationError(f"items[{idx}].send_count must be positive", details={"index": idx})
        if product_id in seen:
            raise ValidationError(f"Product {product_id} listed twice", details={"product_id": product_id})
        seen.add(product_id)
        parsed.append((product_id, send_count))

    get_products(store_id, seen)
    return parsed


def _locked_transfer(store_id: int, transfer_id: int) -> StockTransfer:
    transfer = lock_for_update(
        db.session.query(StockTransfer).filter_by(id=transfer_id, store_id=store_id)
    ).first()
    if transfer is None:
        raise NotFound(f"Transfer {transfer_id} not found", details={"transfer_id": transfer_id})
    return transfer


def _require_status(transfer: StockTransfer, allowed: tuple, action: str) -> None:
    if transfer.status not in allowed:
        raise InvalidTransferState(
            f"Cannot {action} transfer in {transfer.status} status",
            details={"transfer_id": transfer.id, "status": transfer.status},
        )


def create_transfer(
    store_id: int,
    to_branch_id: int,
    items,
    from_branch_id: int | None = None,
    requested_by: int | None = None,
    note: str | None = None,
) -> StockTransfer:
    """Record a transfer request in CREATED. Stock levels are not touched."""
    to_branch_id = _as_int(to_branch_id, "to_branch_id")
    if from_branch_id is not None:
        from_branch_id = _as_int(from_branch_id, "from_branch_id")
    if from_branch_id is not None and from_branch_id == to_branch_id:
        raise ValidationError("Cannot transfer to the same branch", details={"branch_id": to_branch_id})

    get_branch(store_id, to_branch_id)
    if from_branch_id is not None:
        get_branch(store_id, from_branch_id)
    parsed = _parse_send_items(store_id, items)

    def _op():
        transfer = StockTransfer(
            store_id=store_id,
            from_branch_id=from_branch_id,
            to_branch_id=to_branch_id,
            status=TRANSFER_STATUS_CREATED,
            note=note,
            requested_by=requested_by,
        )
        db.session.add(transfer)
        db.session.flush()

        for product_id, send_count in parsed:
            db.session.add(StockTransferItem(
                transfer_id=transfer.id,
                product_id=product_id,
                send_count=send_count,
            ))
        db.session.flush()
        return transfer

    transfer = run_atomic(_op)
    current_app.logger.info(
        "Transfer %s created: %s -> branch %s",
        transfer.id, from_branch_id or "central", to_branch_id,
    )
    return transfer


def withdraw_goods(store_id: int, branch_id: int, items, staff_id: int | None, note: str | None = None) -> StockTransfer:
    """A branch asks the central warehouse for stock."""
    return create_transfer(
        store_id,
        to_branch_id=branch_id,
        items=items,
        from_branch_id=None,
        requested_by=staff_id,
        note=note,
    )


def send_transfer(store_id: int, transfer_id: int, staff_id: int | None) -> StockTransfer:
    def _op():
        transfer = _locked_transfer(store_id, transfer_id)
        _require_status(transfer, (TRANSFER_STATUS_CREATED,), "send")

        if not transfer.is_from_central:
            for item in transfer.items:
                adjust(
                    store_id, transfer.from_branch_id, item.product_id, -item.send_count,
                    MOVEMENT_TRANSFER_OUT, staff_id,
                    reference_type=TRANSFER_REFERENCE,
                    reference_id=transfer.id,
                )

        transfer.status = TRANSFER_STATUS_SENT
        transfer.sent_by = staff_id
        transfer.sent_at = utcnow()
        db.session.flush()
        return transfer

    transfer = run_atomic(_op, retry_on=STOCK_RETRYABLE_ERRORS)
    current_app.logger.info("Transfer %s sent by staff %s", transfer.id, staff_id)
    return transfer


def _parse_receive_counts(items) -> dict[int, int]:
    """Map item id -> receive_count. Items may be keyed by item_id or product_id."""
    if items is None:
        return {}
    if not isinstance(items, list):
        raise ValidationError("items must be a list", details={"field": "items"})

    counts = {}
    for idx, entry in enumerate(items):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{idx}] must be an object", details={"index": idx})
        count = _as_int(entry.get("receive_count"), f"items[{idx}].receive_count")
        if count < 0:
            raise ValidationError(f"items[{idx}].receive_count must not be negative", details={"index": idx})
        if entry.get("item_id") is not None:
            key = ("item", _as_int(entry["item_id"], f"items[{idx}].item_id"))
        elif entry.get("product_id") is not None:
            key = ("product", _as_int(entry["product_id"], f"items[{idx}].product_id"))
        else:
            raise ValidationError(f"items[{idx}] needs item_id or product_id", details={"index": idx})
        if key in counts:
            raise ValidationError(f"items[{idx}] listed twice", details={"index": idx})
        counts[key] = count
    return counts


def receive_transfer(
    store_id: int,
    branch_id: int,
    transfer_id: int,
    items,
    staff_id: int | None,
) -> StockTransfer:
    """
    SENT -> RECEIVED at the destination branch.

    items carries the counted receive_count per item; items left out are
    received in full (receive_count = send_count).
    """
    counts = _parse_receive_counts(items)

    def _op():
        transfer = _locked_transfer(store_id, transfer_id)
        _require_status(transfer, (TRANSFER_STATUS_SENT,), "receive")
        if transfer.to_branch_id != branch_id:
            raise InvalidTransferState(
                "Transfer can only be received by its destination branch",
                details={"transfer_id": transfer.id, "to_branch_id": transfer.to_branch_id},
            )

        by_item = {item.id: item for item in transfer.items}
        by_product = {item.product_id: item for item in transfer.items}
        resolved = {}
        for (kind, key), count in counts.items():
            item = by_item.get(key) if kind == "item" else by_product.get(key)
            if item is None:
                raise ValidationError(
                    f"{kind} {key} is not part of transfer {transfer.id}",
                    details={kind + "_id": key},
                )
            resolved[item.id] = count

        for item in transfer.items:
            item.receive_count = resolved.get(item.id, item.send_count)
            if item.receive_count > 0:
                adjust(
                    store_id, branch_id, item.product_id, item.receive_count,
                    MOVEMENT_TRANSFER_IN, staff_id,
                    reference_type=TRANSFER_REFERENCE,
                    reference_id=transfer.id,
                )

        transfer.status = TRANSFER_STATUS_RECEIVED
        transfer.received_by = staff_id
        transfer.received_at = utcnow()
        db.session.flush()
        return transfer

    transfer = run_atomic(_op, retry_on=STOCK_RETRYABLE_ERRORS)
    current_app.logger.info("Transfer %s received at branch %s by staff %s", transfer.id, branch_id, staff_id)
    return transfer


def _sent_quantities(transfer: StockTransfer) -> dict[int, int]:
    """What the send actually removed from the source, per product (positive)."""
    rows = (
        db.session.query(StockMovement.product_id, func.coalesce(func.sum(StockMovement.quantity_change), 0))
        .filter(
            StockMovement.reference_type == TRANSFER_REFERENCE,
            StockMovement.reference_id == transfer.id,
            StockMovement.branch_id == transfer.from_branch_id,
            StockMovement.movement_type == MOVEMENT_TRANSFER_OUT,
        )
        .group_by(StockMovement.product_id)
        .all()
    )
    return {product_id: -int(total) for product_id, total in rows if total}


def cancel_transfer(store_id: int, transfer_id: int, staff_id: int | None = None) -> StockTransfer:
    def _op():
        transfer = _locked_transfer(store_id, transfer_id)
        _require_status(transfer, (TRANSFER_STATUS_CREATED, TRANSFER_STATUS_SENT), "cancel")

        if transfer.status == TRANSFER_STATUS_SENT and not transfer.is_from_central:
            for product_id, quantity in sorted(_sent_quantities(transfer).items()):
                adjust(
                    store_id, transfer.from_branch_id, product_id, quantity,
                    MOVEMENT_TRANSFER_IN, staff_id,
                    reference_type=TRANSFER_REFERENCE,
                    reference_id=transfer.id,
                    reason="Transfer cancelled",
                )

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_by = staff_id
        transfer.cancelled_at = utcnow()
        db.session.flush()
        return transfer

    transfer = run_atomic(_op, retry_on=STOCK_RETRYABLE_ERRORS)
    current_app.logger.info("Transfer %s cancelled by staff %s", transfer.id, staff_id)
    return transfer


def get_transfer(store_id: int, transfer_id: int) -> StockTransfer:
    transfer = db.session.query(StockTransfer).filter_by(id=transfer_id, store_id=store_id).first()
    if transfer is None:
        raise NotFound(f"Transfer {transfer_id} not found", details={"transfer_id": transfer_id})
    return transfer


def list_transfers(store_id: int, branch_id: int | None = None, limit: int | None = None, offset: int = 0) -> dict:
    """Transfers touching branch (as source or destination), newest first."""
    default_size = current_app.config.get("TRANSFER_PAGE_SIZE_DEFAULT", 20)
    max_size = current_app.config.get("TRANSFER_PAGE_SIZE_MAX", 100)
    limit = default_size if limit is None else max(1, min(int(limit), max_size))
    offset = max(0, int(offset))

    q = db.session.query(StockTransfer).filter_by(store_id=store_id)
    if branch_id is not None:
        q = q.filter(
            (StockTransfer.from_branch_id == branch_id) | (StockTransfer.to_branch_id == branch_id)
        )
    total = q.count()
    rows = q.order_by(StockTransfer.id.desc()).offset(offset).limit(limit).all()
    return {
        "items": [t.to_dict(include_items=False) for t in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def list_pending_transfers(store_id: int, branch_id: int) -> list[StockTransfer]:
    """SENT transfers waiting to be received at branch."""
    return (
        db.session.query(StockTransfer)
        .filter_by(store_id=store_id, to_branch_id=branch_id, status=TRANSFER_STATUS_SENT)
        .order_by(StockTransfer.id.asc())
        .all()
    )
