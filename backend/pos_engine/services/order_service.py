# Overview: Sale creation and cancellation as single atomic units over the stock ledger.

"""
Order transaction processor.

create_order() validates everything it can before touching the database,
then runs one unit of work:

1. insert the order header (PAID)
2. deduct stock per line through the ledger and store the before/after
   snapshot on the order item
3. insert payments
4. record the promotion actually used and its discount
5. record change handed back as a PAID_OUT drawer movement

and commits. Any failure rolls the whole unit back, so a partial order is
never visible. Loyalty accrual runs after the commit and cannot fail the
order.

The shift must belong to the branch and still be open; it is checked
again under lock inside the unit of work.
"""
from __future__ import annotations

from flask import current_app

from ..errors import InsufficientPayment, InvalidOrderState, NoActiveShift, NotFound, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, OrderPromotion, Payment, Shift
from ..models.inventory import MOVEMENT_CANCEL_SALE, MOVEMENT_SALE
from ..models.sales import ORDER_STATUS_CANCELLED, ORDER_STATUS_PAID, PAYMENT_METHODS
from ..models.shifts import CASH_MOVEMENT_PAID_OUT
from ..time_utils import utcnow
from . import loyalty_service, promotion_engine
from .catalog_service import get_customer, get_products
from .concurrency import STOCK_RETRYABLE_ERRORS, lock_for_update, run_atomic
from .promotion_engine import CartLine
from .promotions_service import get_promotion
from .shift_service import record_cash_movement
from .stock_ledger_service import adjust


ORDER_REFERENCE = "orders"


def _as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={"field": field})


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item", details={"field": "items"})

    parsed = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{idx}] must be an object", details={"index": idx})
        product_id = _as_int(item.get("product_id"), f"items[{idx}].product_id")
        quantity = _as_int(item.get("quantity"), f"items[{idx}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be positive", details={"index": idx})
        price = item.get("unit_price_cents")
        if price is not None:
            price = _as_int(price, f"items[{idx}].unit_price_cents")
            if price < 0:
                raise ValidationError(f"items[{idx}].unit_price_cents must not be negative", details={"index": idx})
        parsed.append({"product_id": product_id, "quantity": quantity, "unit_price_cents": price})
    return parsed


def _parse_payments(payments) -> list[dict]:
    if not isinstance(payments, list) or not payments:
        raise ValidationError("Order must contain at least one payment", details={"field": "payments"})

    parsed = []
    for idx, payment in enumerate(payments):
        if not isinstance(payment, dict):
            raise ValidationError(f"payments[{idx}] must be an object", details={"index": idx})
        method = str(payment.get("method") or "").upper()
        if method not in PAYMENT_METHODS:
            raise ValidationError(
                f"payments[{idx}].method must be one of {sorted(PAYMENT_METHODS)}",
                details={"index": idx, "method": payment.get("method")},
            )
        amount = _as_int(payment.get("amount_cents"), f"payments[{idx}].amount_cents")
        if amount < 0:
            raise ValidationError(f"payments[{idx}].amount_cents must not be negative", details={"index": idx})
        parsed.append({"method": method, "amount_cents": amount})
    return parsed


def _get_shift(store_id: int, branch_id: int, shift_id: int, lock: bool = False) -> Shift:
    """The branch's shift, which must still be open."""
    q = db.session.query(Shift).filter_by(id=shift_id, store_id=store_id, branch_id=branch_id)
    shift = (lock_for_update(q.populate_existing()) if lock else q).first()
    if shift is None:
        raise NotFound(f"Shift {shift_id} not found", details={"shift_id": shift_id})
    if not shift.is_active:
        raise NoActiveShift(f"Shift {shift_id} is closed", details={"shift_id": shift_id})
    return shift


def create_order(
    store_id: int,
    branch_id: int,
    shift_id: int,
    staff_id: int | None,
    items,
    payments,
    discount_total_cents: int | None = None,
    customer_id: int | None = None,
    promotion_id: int | None = None,
) -> Order:
    """
    Record a paid sale.

    discount_total_cents defaults to the promotion's computed discount when a
    promotion is given, else 0. Raises InsufficientPayment when payments do
    not cover subtotal - discount.
    """
    parsed_items = _parse_items(items)
    parsed_payments = _parse_payments(payments)

    products = get_products(store_id, [i["product_id"] for i in parsed_items])
    for item in parsed_items:
        if item["unit_price_cents"] is None:
            item["unit_price_cents"] = products[item["product_id"]].base_price_cents

    if customer_id is not None:
        get_customer(store_id, customer_id)
    _get_shift(store_id, branch_id, shift_id)

    lines = [
        CartLine(product_id=i["product_id"], quantity=i["quantity"], unit_price_cents=i["unit_price_cents"])
        for i in parsed_items
    ]
    subtotal_cents = promotion_engine.subtotal(lines)

    promotion = get_promotion(store_id, promotion_id) if promotion_id is not None else None
    if discount_total_cents is None:
        # A promotion never takes the total below zero
        discount_total_cents = (
            min(promotion_engine.evaluate(promotion.to_rule(), lines), subtotal_cents) if promotion else 0
        )
    else:
        discount_total_cents = _as_int(discount_total_cents, "discount_total_cents")
        if discount_total_cents < 0 or discount_total_cents > subtotal_cents:
            raise ValidationError(
                "discount_total_cents must be between 0 and the subtotal",
                details={"discount_total_cents": discount_total_cents, "subtotal_cents": subtotal_cents},
            )

    total_price_cents = subtotal_cents - discount_total_cents
    paid_total_cents = sum(p["amount_cents"] for p in parsed_payments)
    if paid_total_cents < total_price_cents:
        raise InsufficientPayment(
            "Payment does not cover the order total",
            details={"total_price_cents": total_price_cents, "paid_total_cents": paid_total_cents},
        )
    change_cents = paid_total_cents - total_price_cents

    def _op():
        # Re-read under lock; the shift may have closed since validation
        _get_shift(store_id, branch_id, shift_id, lock=True)

        order = Order(
            store_id=store_id,
            branch_id=branch_id,
            shift_id=shift_id,
            staff_id=staff_id,
            customer_id=customer_id,
            subtotal_cents=subtotal_cents,
            discount_total_cents=discount_total_cents,
            total_price_cents=total_price_cents,
            paid_total_cents=paid_total_cents,
            change_cents=change_cents,
            status=ORDER_STATUS_PAID,
            promotion_id=promotion.id if promotion else None,
        )
        db.session.add(order)
        db.session.flush()

        for item in parsed_items:
            before, after = adjust(
                store_id, branch_id, item["product_id"], -item["quantity"], MOVEMENT_SALE, staff_id,
                reference_type=ORDER_REFERENCE,
                reference_id=order.id,
            )
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price_cents=item["unit_price_cents"],
                from_stock_count=before,
                to_stock_count=after,
            ))

        for payment in parsed_payments:
            db.session.add(Payment(order_id=order.id, method=payment["method"], amount_cents=payment["amount_cents"]))

        if promotion is not None:
            db.session.add(OrderPromotion(
                order_id=order.id,
                promotion_id=promotion.id,
                discount_cents=discount_total_cents,
            ))

        if change_cents > 0:
            record_cash_movement(
                store_id, branch_id, shift_id, CASH_MOVEMENT_PAID_OUT, change_cents, staff_id,
                note=f"Change for order {order.id}",
                order_id=order.id,
            )

        db.session.flush()
        return order

    order = run_atomic(_op, retry_on=STOCK_RETRYABLE_ERRORS)

    if customer_id is not None:
        try:
            loyalty_service.earn_points_for_order(order.id)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Loyalty accrual failed for order %s", order.id)

    return order


def cancel_order(store_id: int, order_id: int, reason: str | None, actor: int | None) -> Order:
    """
    PAID -> CANCELLED.

    Each line gets back exactly the stock its sale removed (a CANCEL_SALE
    movement). Earned points are reversed after the commit when
    LOYALTY_REVERSE_ON_CANCEL is set.
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id, store_id=store_id)).first()
        if order is None:
            raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
        if order.status != ORDER_STATUS_PAID:
            raise InvalidOrderState(
                f"Cannot cancel order in {order.status} status",
                details={"order_id": order_id, "status": order.status},
            )

        for item in order.items:
            restore = -item.applied_stock_change
            if restore == 0:
                continue
            adjust(
                order.store_id, order.branch_id, item.product_id, restore, MOVEMENT_CANCEL_SALE, actor,
                reference_type=ORDER_REFERENCE,
                reference_id=order.id,
                reason=reason,
            )

        order.status = ORDER_STATUS_CANCELLED
        order.cancel_reason = reason
        order.cancelled_by = actor
        order.cancelled_at = utcnow()
        db.session.flush()
        return order

    order = run_atomic(_op, retry_on=STOCK_RETRYABLE_ERRORS)
    current_app.logger.info("Order %s cancelled by staff %s", order.id, actor)

    if order.customer_id is not None and current_app.config.get("LOYALTY_REVERSE_ON_CANCEL", True):
        try:
            loyalty_service.reverse_points_for_order(order.id, staff_id=actor)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Loyalty reversal failed for order %s", order.id)

    return order


def get_order(store_id: int, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, store_id=store_id).first()
    if order is None:
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def list_orders_by_shift(store_id: int, branch_id: int, shift_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter_by(store_id=store_id, branch_id=branch_id, shift_id=shift_id)
        .order_by(Order.id.desc())
        .all()
    )
