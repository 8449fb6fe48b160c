# Overview: Stock ledger primitives; the only writer of stock levels.

"""
Stock ledger invariants (authoritative)

- StockLevel.on_hand is never negative at rest. A deduction larger than the
  current quantity clamps the level to zero.
- Every change to a StockLevel writes exactly one StockMovement in the same
  unit of work. quantity_change is the delta actually applied, so on_hand
  always equals SUM(quantity_change) for its (branch, product).
- Concurrent adjusts on one (branch, product) serialize through the row lock
  (FOR UPDATE where the database supports it) and the version_id column.
- A missing (branch, product) row is provisioned at zero on first use.

adjust() only flushes. The caller owns the transaction, which is how order
creation and transfer transitions keep several adjusts in one commit.
"""
from __future__ import annotations

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import StockLevel, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUST,
    MOVEMENT_DAMAGE,
    MOVEMENT_ISSUE,
    MOVEMENT_RECEIVE,
    MOVEMENT_TYPES,
)
from .catalog_service import get_branch, get_product
from .concurrency import STOCK_RETRYABLE_ERRORS, lock_for_update, run_atomic


# Manual adjustment kinds and the sign their quantity carries.
MANUAL_KIND_SIGNS = {
    MOVEMENT_RECEIVE: 1,
    MOVEMENT_ISSUE: -1,
    MOVEMENT_DAMAGE: -1,
    MOVEMENT_ADJUST: None,  # signed as given
}


def _locked_level(store_id: int, branch_id: int, product_id: int) -> StockLevel:
    level = lock_for_update(
        db.session.query(StockLevel).filter_by(branch_id=branch_id, product_id=product_id)
    ).first()
    if level is None:
        level = StockLevel(store_id=store_id, branch_id=branch_id, product_id=product_id, on_hand=0)
        db.session.add(level)
        db.session.flush()
    return level


def adjust(
    store_id: int,
    branch_id: int,
    product_id: int,
    delta: int,
    kind: str,
    actor: int | None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reason: str | None = None,
    note: str | None = None,
) -> tuple[int, int]:
    """
    Apply delta to the (branch, product) level and append its movement.

    Returns (before, after). after = max(0, before + delta).
    """
    if kind not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {kind}", details={"movement_type": kind})

    level = _locked_level(store_id, branch_id, product_id)
    before = level.on_hand
    after = max(0, before + int(delta))

    level.on_hand = after

    db.session.add(StockMovement(
        store_id=store_id,
        branch_id=branch_id,
        product_id=product_id,
        movement_type=kind,
        requested_change=int(delta),
        quantity_change=after - before,
        from_stock_count=before,
        to_stock_count=after,
        reason=reason,
        note=note,
        changed_by=actor,
        reference_type=reference_type,
        reference_id=reference_id,
    ))
    db.session.flush()

    if before + int(delta) < 0:
        current_app.logger.warning(
            "Stock clamped at zero: branch=%s product=%s before=%s delta=%s",
            branch_id, product_id, before, delta,
        )

    return before, after


def get_on_hand(branch_id: int, product_id: int) -> int:
    level = db.session.query(StockLevel).filter_by(branch_id=branch_id, product_id=product_id).first()
    return level.on_hand if level else 0


def adjust_stock(
    store_id: int,
    branch_id: int,
    product_id: int,
    quantity: int,
    kind: str,
    actor: int | None,
    reason: str | None = None,
    note: str | None = None,
) -> dict:
    """
    Standalone manual stock change, committed on its own.

    RECEIVE adds quantity; ISSUE and DAMAGE remove it; ADJUST applies a
    signed quantity as given.
    """
    if kind not in MANUAL_KIND_SIGNS:
        raise ValidationError(
            f"Movement type {kind} cannot be recorded manually",
            details={"movement_type": kind},
        )
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer", details={"field": "quantity"})

    sign = MANUAL_KIND_SIGNS[kind]
    if sign is None:
        if quantity == 0:
            raise ValidationError("quantity must not be zero", details={"field": "quantity"})
        delta = quantity
    else:
        if quantity <= 0:
            raise ValidationError("quantity must be positive", details={"field": "quantity"})
        delta = sign * quantity

    get_branch(store_id, branch_id)
    get_product(store_id, product_id)

    def _op():
        before, after = adjust(
            store_id, branch_id, product_id, delta, kind, actor,
            reason=reason, note=note,
        )
        return {
            "branch_id": branch_id,
            "product_id": product_id,
            "movement_type": kind,
            "from_stock_count": before,
            "to_stock_count": after,
            "quantity_change": after - before,
        }

    return run_atomic(_op, retry_on=STOCK_RETRYABLE_ERRORS)


def list_movements(
    store_id: int,
    branch_id: int,
    product_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[dict]:
    q = db.session.query(StockMovement).filter_by(store_id=store_id, branch_id=branch_id)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    rows = (
        q.order_by(StockMovement.id.desc())
        .offset(max(0, int(offset)))
        .limit(max(1, min(int(limit), 500)))
        .all()
    )
    return [m.to_dict() for m in rows]
