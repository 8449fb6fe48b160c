# Overview: Shift lifecycle per branch: open, summarize, close with cash reconciliation.

"""
Shift lifecycle.

STATE MACHINE (per branch): Closed -> Open -> Closed

- At most one active shift per branch. Branch.is_shift_open is the
  per-branch state record; the partial unique index on shifts
  (branch_id WHERE is_active) backs it up at the storage level.
- Cash figures are scoped to the shift id, never to wall-clock time.

Expected cash = starting cash
              + CASH payments on PAID orders of the shift
              - change given on PAID orders that were paid (at least partly) in CASH
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import NoActiveShift, ShiftAlreadyOpen, ValidationError
from ..extensions import db
from ..models import Branch, Order, Payment, Shift, ShiftCashMovement, StockCount, StockCountLine
from ..models.sales import ORDER_STATUS_CANCELLED, ORDER_STATUS_PAID, PAYMENT_CASH
from ..models.shifts import CASH_MOVEMENT_PAID_IN, CASH_MOVEMENT_PAID_OUT, DIRECTION_IN, DIRECTION_OUT
from ..time_utils import utcnow
from .catalog_service import get_branch, get_products
from .concurrency import lock_for_update, run_atomic
from .stock_ledger_service import get_on_hand


CASH_MOVEMENT_DIRECTIONS = {
    CASH_MOVEMENT_PAID_OUT: DIRECTION_OUT,
    CASH_MOVEMENT_PAID_IN: DIRECTION_IN,
}


def _non_negative_int(value, field: str) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if value < 0:
        raise ValidationError(f"{field} must not be negative", details={"field": field})
    return value


def _active_shift_query(branch_id: int):
    return db.session.query(Shift).filter_by(branch_id=branch_id, is_active=True)


def open_shift(store_id: int, branch_id: int, staff_id: int | None, starting_cash_cents) -> Shift:
    """
    Open a shift on branch.

    Raises ShiftAlreadyOpen when the branch already has an active shift,
    including when a concurrent open wins the race.
    """
    starting_cash_cents = _non_negative_int(starting_cash_cents, "starting_cash_cents")
    get_branch(store_id, branch_id)

    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id, store_id=store_id)).one()
        existing = _active_shift_query(branch_id).first()
        if branch.is_shift_open or existing is not None:
            raise ShiftAlreadyOpen(
                "Branch already has an open shift",
                details={"branch_id": branch_id, "shift_id": existing.id if existing else None},
            )

        now = utcnow()
        shift = Shift(
            store_id=store_id,
            branch_id=branch_id,
            starting_cash_cents=starting_cash_cents,
            opened_by=staff_id,
            started_at=now,
            is_active=True,
        )
        db.session.add(shift)

        branch.is_shift_open = True
        branch.shift_opened_at = now
        db.session.flush()
        return shift

    try:
        shift = run_atomic(_op)
    except IntegrityError as exc:
        raise ShiftAlreadyOpen(
            "Branch already has an open shift",
            details={"branch_id": branch_id},
        ) from exc

    current_app.logger.info("Shift %s opened on branch %s by staff %s", shift.id, branch_id, staff_id)
    return shift


def get_current_shift(store_id: int, branch_id: int) -> Shift | None:
    """The branch's active shift, or None. Absence is not an error here."""
    return (
        db.session.query(Shift)
        .filter_by(store_id=store_id, branch_id=branch_id, is_active=True)
        .first()
    )


def require_current_shift(store_id: int, branch_id: int) -> Shift:
    shift = get_current_shift(store_id, branch_id)
    if shift is None:
        raise NoActiveShift("No open shift for this branch", details={"branch_id": branch_id})
    return shift


def compute_cash_position(shift: Shift) -> dict:
    cash_received = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .join(Order, Order.id == Payment.order_id)
        .filter(
            Order.shift_id == shift.id,
            Order.status == ORDER_STATUS_PAID,
            Payment.method == PAYMENT_CASH,
        )
        .scalar()
    )

    cash_order_ids = (
        db.session.query(Payment.order_id)
        .filter(Payment.method == PAYMENT_CASH)
        .distinct()
    )
    change_given = (
        db.session.query(func.coalesce(func.sum(Order.change_cents), 0))
        .filter(
            Order.shift_id == shift.id,
            Order.status == ORDER_STATUS_PAID,
            Order.id.in_(cash_order_ids),
        )
        .scalar()
    )

    cash_received = int(cash_received or 0)
    change_given = int(change_given or 0)
    return {
        "starting_cash_cents": shift.starting_cash_cents,
        "cash_received_cents": cash_received,
        "change_given_cents": change_given,
        "expected_cash_cents": shift.starting_cash_cents + cash_received - change_given,
    }


def _order_aggregates(shift_id: int, status: str) -> tuple[int, int]:
    count, total = (
        db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total_price_cents), 0))
        .filter(Order.shift_id == shift_id, Order.status == status)
        .one()
    )
    return int(count or 0), int(total or 0)


def _payments_by_method(shift_id: int) -> dict[str, int]:
    rows = (
        db.session.query(Payment.method, func.coalesce(func.sum(Payment.amount_cents), 0))
        .join(Order, Order.id == Payment.order_id)
        .filter(Order.shift_id == shift_id, Order.status == ORDER_STATUS_PAID)
        .group_by(Payment.method)
        .all()
    )
    return {method: int(total) for method, total in rows}


def get_shift_summary(store_id: int, branch_id: int) -> dict:
    shift = require_current_shift(store_id, branch_id)
    cash = compute_cash_position(shift)
    order_count, total_sales = _order_aggregates(shift.id, ORDER_STATUS_PAID)
    cancelled_count, cancelled_total = _order_aggregates(shift.id, ORDER_STATUS_CANCELLED)

    return {
        "shift": shift.to_dict(),
        **cash,
        "cash_sales_cents": cash["cash_received_cents"] - cash["change_given_cents"],
        "total_sales_cents": total_sales,
        "order_count": order_count,
        "payments_by_method": _payments_by_method(shift.id),
        "cancelled_order_count": cancelled_count,
        "cancelled_total_cents": cancelled_total,
    }


def _parse_stock_counts(store_id: int, stock_counts) -> list[tuple[int, int]]:
    if stock_counts is None:
        return []
    if not isinstance(stock_counts, list):
        raise ValidationError("stock_counts must be a list", details={"field": "stock_counts"})

    parsed = []
    seen = set()
    for idx, entry in enumerate(stock_counts):
        if not isinstance(entry, dict):
            raise ValidationError(f"stock_counts[{idx}] must be an object", details={"index": idx})
        product_id = _non_negative_int(entry.get("product_id"), f"stock_counts[{idx}].product_id")
        actual = _non_negative_int(entry.get("actual_quantity"), f"stock_counts[{idx}].actual_quantity")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} counted twice", details={"product_id": product_id})
        seen.add(product_id)
        parsed.append((product_id, actual))

    get_products(store_id, seen)
    return parsed


def close_shift(
    store_id: int,
    branch_id: int,
    staff_id: int | None,
    actual_cash_cents,
    note: str | None = None,
    stock_counts=None,
) -> dict:
    """
    Close the branch's active shift.

    Expected cash is recomputed under the shift lock, the closing snapshot is
    written, and both the shift and the branch flag flip in one commit. An
    optional physical stock count is stored for audit only; stock levels are
    not touched.
    """
    actual_cash_cents = _non_negative_int(actual_cash_cents, "actual_cash_cents")
    counts = _parse_stock_counts(store_id, stock_counts)

    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id, store_id=store_id)).first()
        shift = lock_for_update(_active_shift_query(branch_id).filter_by(store_id=store_id)).first()
        if branch is None or shift is None:
            raise NoActiveShift("No open shift for this branch", details={"branch_id": branch_id})

        cash = compute_cash_position(shift)
        now = utcnow()

        shift.expected_cash_cents = cash["expected_cash_cents"]
        shift.ending_cash_cents = actual_cash_cents
        shift.variance_cents = actual_cash_cents - cash["expected_cash_cents"]
        shift.closed_by = staff_id
        shift.ended_at = now
        shift.is_active = False
        if note:
            shift.note = note

        branch.is_shift_open = False
        branch.shift_closed_at = now

        stock_count = None
        if counts:
            stock_count = StockCount(
                store_id=store_id,
                branch_id=branch_id,
                shift_id=shift.id,
                counted_by=staff_id,
                note=note,
            )
            db.session.add(stock_count)
            db.session.flush()
            for product_id, actual in counts:
                expected = get_on_hand(branch_id, product_id)
                db.session.add(StockCountLine(
                    stock_count_id=stock_count.id,
                    product_id=product_id,
                    expected_quantity=expected,
                    actual_quantity=actual,
                    difference=actual - expected,
                ))

        db.session.flush()
        return shift, cash, stock_count

    shift, cash, stock_count = run_atomic(_op)

    current_app.logger.info(
        "Shift %s closed on branch %s: expected=%s actual=%s variance=%s",
        shift.id, branch_id, shift.expected_cash_cents, shift.ending_cash_cents, shift.variance_cents,
    )
    return {
        "shift": shift.to_dict(),
        **cash,
        "actual_cash_cents": shift.ending_cash_cents,
        "variance_cents": shift.variance_cents,
        "stock_count": stock_count.to_dict() if stock_count else None,
    }


def record_cash_movement(
    store_id: int,
    branch_id: int,
    shift_id: int,
    movement_type: str,
    amount_cents: int,
    staff_id: int | None,
    note: str | None = None,
    order_id: int | None = None,
) -> ShiftCashMovement:
    """Append a drawer movement in the caller's unit of work (flush only)."""
    direction = CASH_MOVEMENT_DIRECTIONS.get(movement_type)
    if direction is None:
        raise ValidationError(f"Unknown cash movement type: {movement_type}")
    if amount_cents <= 0:
        raise ValidationError("Cash movement amount must be positive")

    movement = ShiftCashMovement(
        store_id=store_id,
        branch_id=branch_id,
        shift_id=shift_id,
        movement_type=movement_type,
        direction=direction,
        amount_cents=amount_cents,
        order_id=order_id,
        note=note,
        created_by_staff_id=staff_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement
