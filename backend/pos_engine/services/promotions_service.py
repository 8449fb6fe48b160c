from __future__ import annotations

import dataclasses

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Promotion, PromotionProduct
from ..time_utils import parse_iso_datetime, utcnow
from . import promotion_engine
from .catalog_service import get_branch, get_products
from .promotion_engine import AUTO_APPLIED_KINDS, CartLine


def _parse_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={"field": field})


def build_cart_lines(store_id: int, items) -> list[CartLine]:
    """
    Turn request items into CartLines.

    unit_price_cents defaults to the product's base price when omitted.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})

    parsed = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict) or "product_id" not in item:
            raise ValidationError(f"items[{idx}].product_id is required", details={"index": idx})
        product_id = _parse_int(item["product_id"], f"items[{idx}].product_id")
        quantity = _parse_int(item.get("quantity"), f"items[{idx}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be positive", details={"index": idx})
        price = item.get("unit_price_cents")
        parsed.append((product_id, quantity, None if price is None else _parse_int(price, f"items[{idx}].unit_price_cents")))

    products = get_products(store_id, [p for p, _, _ in parsed])
    lines = []
    for product_id, quantity, price in parsed:
        if price is None:
            price = products[product_id].base_price_cents
        if price < 0:
            raise ValidationError("unit_price_cents must not be negative", details={"product_id": product_id})
        lines.append(CartLine(product_id=product_id, quantity=quantity, unit_price_cents=price))
    return lines


def _active_query(store_id: int, branch_id: int | None, now):
    q = db.session.query(Promotion).filter(
        Promotion.store_id == store_id,
        Promotion.is_active.is_(True),
        (Promotion.starts_at.is_(None)) | (Promotion.starts_at <= now),
        (Promotion.ends_at.is_(None)) | (Promotion.ends_at >= now),
    )
    if branch_id is not None:
        q = q.filter((Promotion.branch_id.is_(None)) | (Promotion.branch_id == branch_id))
    return q.order_by(Promotion.id.asc())


def list_active_promotions(store_id: int, branch_id: int | None, now=None) -> list[Promotion]:
    """Promotions usable at branch right now (store-wide ones included)."""
    return _active_query(store_id, branch_id, now or utcnow()).all()


def get_promotion(store_id: int, promotion_id: int) -> Promotion:
    promotion = db.session.query(Promotion).filter_by(id=promotion_id, store_id=store_id).first()
    if not promotion:
        raise NotFound(f"Promotion {promotion_id} not found", details={"promotion_id": promotion_id})
    return promotion


def calculate_discount(store_id: int, promotion_id: int, lines, subtotal_cents: int | None = None) -> dict:
    """
    Evaluate one promotion against a cart.

    final_total_cents is floored at zero; is_applicable means the discount
    is positive.
    """
    promotion = get_promotion(store_id, promotion_id)
    lines = list(lines)
    original = promotion_engine.subtotal(lines) if subtotal_cents is None else int(subtotal_cents)
    discount = promotion_engine.evaluate(promotion.to_rule(), lines)
    return {
        "promotion_id": promotion.id,
        "promotion_name": promotion.name,
        "original_total_cents": original,
        "discount_cents": discount,
        "final_total_cents": max(0, original - discount),
        "is_applicable": discount > 0,
    }


def detect_applicable(store_id: int, branch_id: int, lines, now=None) -> list[dict]:
    """Every active promotion for the branch that yields a positive discount."""
    lines = list(lines)
    total = promotion_engine.subtotal(lines)

    results = []
    for promotion in list_active_promotions(store_id, branch_id, now=now):
        rule = promotion.to_rule()
        discount = promotion_engine.evaluate(rule, lines)
        if discount <= 0:
            continue
        results.append({
            "promotion_id": promotion.id,
            "promotion_name": promotion.name,
            "promotion_type": promotion.promo_type,
            "discount_cents": discount,
            "final_total_cents": max(0, total - discount),
            "is_auto_applied": rule.kind in AUTO_APPLIED_KINDS,
        })
    return results


def create_promotion(store_id: int, data: dict) -> Promotion:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})

    product_ids = [_parse_int(pid, "product_ids") for pid in data.get("product_ids") or []]

    # Raises ValidationError for unknown types, missing or malformed config fields
    rule = promotion_engine.rule_from_columns(
        promo_type=data.get("promo_type"),
        percent_bps=data.get("percent_bps"),
        amount_cents=data.get("amount_cents"),
        old_set_total_cents=data.get("old_set_total_cents"),
        new_set_total_cents=data.get("new_set_total_cents"),
        min_quantity=data.get("min_quantity"),
        product_ids=product_ids,
    )
    # Only the fields the kind uses are stored, already as ints
    config = dataclasses.asdict(rule.rule)

    branch_id = data.get("branch_id")
    if branch_id is not None:
        branch_id = _parse_int(branch_id, "branch_id")
        get_branch(store_id, branch_id)
    get_products(store_id, product_ids)

    try:
        starts_at = parse_iso_datetime(data.get("starts_at"))
        ends_at = parse_iso_datetime(data.get("ends_at"))
    except ValueError:
        raise ValidationError("starts_at/ends_at must be ISO-8601 datetimes")
    if starts_at and ends_at and ends_at < starts_at:
        raise ValidationError("ends_at must not be before starts_at", details={"field": "ends_at"})

    promotion = Promotion(
        store_id=store_id,
        branch_id=branch_id,
        name=name,
        description=data.get("description"),
        promo_type=rule.kind.value,
        percent_bps=config.get("percent_bps"),
        amount_cents=config.get("amount_cents"),
        old_set_total_cents=config.get("old_set_total_cents"),
        new_set_total_cents=config.get("new_set_total_cents"),
        min_quantity=config.get("min_quantity"),
        starts_at=starts_at,
        ends_at=ends_at,
        is_active=bool(data.get("is_active", True)),
    )
    for product_id in sorted(set(product_ids)):
        promotion.products.append(PromotionProduct(product_id=product_id))

    db.session.add(promotion)
    db.session.commit()
    return promotion
