# Overview: Per-product loyalty points ledger: accrue, deduct, redeem, and order hooks.

"""
Loyalty points.

Balances are kept per (store, customer, product). Every balance change
writes one PointTransaction in the same unit of work.

Order accrual runs after the order has committed, in its own transaction.
It never shares a commit with stock deduction.
"""
from __future__ import annotations

from collections import OrderedDict

from flask import current_app

from ..errors import InsufficientPoints, NotFound, ValidationError
from ..extensions import db
from ..models import CustomerProductPoints, Order, PointRedemption, PointTransaction
from ..models.customers import POINTS_EARN, POINTS_REDEEM, POINTS_REVERSE
from .catalog_service import get_branch, get_customer, get_product
from .concurrency import STOCK_RETRYABLE_ERRORS, lock_for_update, run_atomic


ORDER_REFERENCE = "orders"
REDEMPTION_REFERENCE = "point_redemptions"


def _locked_balance(store_id: int, customer_id: int, product_id: int) -> CustomerProductPoints | None:
    return lock_for_update(
        db.session.query(CustomerProductPoints).filter_by(
            store_id=store_id, customer_id=customer_id, product_id=product_id
        )
    ).first()


def accrue(
    store_id: int,
    customer_id: int,
    product_id: int,
    points: int,
    *,
    branch_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    staff_id: int | None = None,
    note: str | None = None,
) -> CustomerProductPoints:
    """Add points to the balance and lifetime total (flush only)."""
    if points <= 0:
        raise ValidationError("points must be positive", details={"points": points})

    balance = _locked_balance(store_id, customer_id, product_id)
    if balance is None:
        balance = CustomerProductPoints(
            store_id=store_id, customer_id=customer_id, product_id=product_id,
            points=0, total_points=0,
        )
        db.session.add(balance)

    balance.points += points
    balance.total_points += points

    db.session.add(PointTransaction(
        store_id=store_id,
        branch_id=branch_id,
        customer_id=customer_id,
        product_id=product_id,
        transaction_type=POINTS_EARN,
        points_change=points,
        reference_type=reference_type,
        reference_id=reference_id,
        staff_id=staff_id,
        note=note,
    ))
    db.session.flush()
    return balance


def deduct(
    store_id: int,
    customer_id: int,
    product_id: int,
    points: int,
    *,
    transaction_type: str = POINTS_REDEEM,
    branch_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    staff_id: int | None = None,
    note: str | None = None,
) -> CustomerProductPoints:
    """
    Remove points from the balance (flush only).

    Raises InsufficientPoints when the balance is smaller than points.
    The lifetime total is left as is.
    """
    if points <= 0:
        raise ValidationError("points must be positive", details={"points": points})
    if transaction_type not in (POINTS_REDEEM, POINTS_REVERSE):
        raise ValidationError(f"Invalid deduction type: {transaction_type}")

    balance = _locked_balance(store_id, customer_id, product_id)
    available = balance.points if balance else 0
    if available < points:
        raise InsufficientPoints(
            "Not enough points",
            details={"product_id": product_id, "available": available, "required": points},
        )

    balance.points -= points
    db.session.add(PointTransaction(
        store_id=store_id,
        branch_id=branch_id,
        customer_id=customer_id,
        product_id=product_id,
        transaction_type=transaction_type,
        points_change=-points,
        reference_type=reference_type,
        reference_id=reference_id,
        staff_id=staff_id,
        note=note,
    ))
    db.session.flush()
    return balance


def _order_transactions(order_id: int, transaction_type: str):
    return db.session.query(PointTransaction).filter_by(
        reference_type=ORDER_REFERENCE,
        reference_id=order_id,
        transaction_type=transaction_type,
    )


def earn_points_for_order(order_id: int) -> list[dict]:
    """
    Accrue points for every product on a committed order.

    Runs once per order; a second call is a no-op. Returns the points
    earned per product.
    """
    per_unit = int(current_app.config.get("LOYALTY_POINTS_PER_UNIT", 1))

    def _op():
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
        if order.customer_id is None or per_unit <= 0:
            return []
        if _order_transactions(order_id, POINTS_EARN).first() is not None:
            return []

        quantities = OrderedDict()
        for item in order.items:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

        earned = []
        for product_id, quantity in quantities.items():
            points = quantity * per_unit
            accrue(
                order.store_id, order.customer_id, product_id, points,
                branch_id=order.branch_id,
                reference_type=ORDER_REFERENCE,
                reference_id=order.id,
                staff_id=order.staff_id,
            )
            earned.append({"product_id": product_id, "points": points})
        return earned

    return run_atomic(_op, retry_on=STOCK_RETRYABLE_ERRORS)


def reverse_points_for_order(order_id: int, staff_id: int | None = None) -> list[dict]:
    """
    Take back the points a cancelled order earned.

    Each product is clamped to the current balance, since some of the points
    may already have been redeemed. Runs once per order.
    """
    def _op():
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
        if order.customer_id is None:
            return []
        if _order_transactions(order_id, POINTS_REVERSE).first() is not None:
            return []

        earned = OrderedDict()
        for txn in _order_transactions(order_id, POINTS_EARN).order_by(PointTransaction.id).all():
            earned[txn.product_id] = earned.get(txn.product_id, 0) + txn.points_change

        reversed_points = []
        for product_id, points in earned.items():
            balance = _locked_balance(order.store_id, order.customer_id, product_id)
            to_reverse = min(points, balance.points if balance else 0)
            if to_reverse <= 0:
                continue
            deduct(
                order.store_id, order.customer_id, product_id, to_reverse,
                transaction_type=POINTS_REVERSE,
                branch_id=order.branch_id,
                reference_type=ORDER_REFERENCE,
                reference_id=order.id,
                staff_id=staff_id,
                note="Order cancelled",
            )
            reversed_points.append({"product_id": product_id, "points": to_reverse})
        return reversed_points

    return run_atomic(_op)


def redeem_points(
    store_id: int,
    branch_id: int,
    customer_id: int,
    product_id: int,
    quantity,
    staff_id: int | None,
) -> dict:
    """Spend points on units of a product; quantity * points_to_redeem are deducted."""
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer", details={"field": "quantity"})
    if quantity <= 0:
        raise ValidationError("quantity must be positive", details={"field": "quantity"})

    get_branch(store_id, branch_id)
    get_customer(store_id, customer_id)
    product = get_product(store_id, product_id)
    if not product.points_to_redeem or product.points_to_redeem <= 0:
        raise ValidationError(
            f"Product {product_id} cannot be redeemed with points",
            details={"product_id": product_id},
        )
    points_needed = product.points_to_redeem * quantity

    def _op():
        redemption = PointRedemption(
            store_id=store_id,
            branch_id=branch_id,
            customer_id=customer_id,
            product_id=product_id,
            quantity=quantity,
            points_used=points_needed,
            staff_id=staff_id,
        )
        db.session.add(redemption)
        db.session.flush()

        balance = deduct(
            store_id, customer_id, product_id, points_needed,
            branch_id=branch_id,
            reference_type=REDEMPTION_REFERENCE,
            reference_id=redemption.id,
            staff_id=staff_id,
        )
        return redemption, balance

    redemption, balance = run_atomic(_op)
    return {
        "redemption": redemption.to_dict(),
        "balance": balance.to_dict(),
    }


def get_customer_points(store_id: int, customer_id: int) -> dict:
    customer = get_customer(store_id, customer_id)
    balances = (
        db.session.query(CustomerProductPoints)
        .filter_by(store_id=store_id, customer_id=customer_id)
        .order_by(CustomerProductPoints.product_id.asc())
        .all()
    )
    return {
        "customer": customer.to_dict(),
        "balances": [b.to_dict() for b in balances],
    }


def get_point_history(store_id: int, customer_id: int, limit: int = 50, offset: int = 0) -> list[dict]:
    get_customer(store_id, customer_id)
    rows = (
        db.session.query(PointTransaction)
        .filter_by(store_id=store_id, customer_id=customer_id)
        .order_by(PointTransaction.id.desc())
        .offset(max(0, int(offset)))
        .limit(max(1, min(int(limit), 200)))
        .all()
    )
    return [r.to_dict() for r in rows]
