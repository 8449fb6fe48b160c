# Overview: Pure promotion evaluation over cart lines. No database access.

"""
Promotion discount engine.

Each promotion kind is its own rule type carrying only the fields it uses.
evaluate() dispatches on the rule type and returns the discount in cents.

Scope:
- Bill-level (empty product set): every cart line matches.
- Product-level: only lines whose product is in the set match.

All money math runs on Decimal and is rounded to whole cents with
ROUND_HALF_UP. Discounts are never negative.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from ..errors import ValidationError


_CENT = Decimal("1")
_BPS_DIVISOR = Decimal("10000")
MAX_PERCENT_BPS = 10000


class PromotionKind(str, enum.Enum):
    PERCENT_DISCOUNT = "PERCENT_DISCOUNT"
    FLAT_DISCOUNT = "FLAT_DISCOUNT"
    FIXED_SET_PRICE = "FIXED_SET_PRICE"
    THRESHOLD_PERCENT = "THRESHOLD_PERCENT"
    THRESHOLD_FLAT = "THRESHOLD_FLAT"


# Only bundle pricing is applied without staff selecting it.
AUTO_APPLIED_KINDS = frozenset({PromotionKind.FIXED_SET_PRICE})


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class PercentDiscount:
    percent_bps: int
    kind = PromotionKind.PERCENT_DISCOUNT


@dataclass(frozen=True)
class FlatDiscount:
    amount_cents: int
    kind = PromotionKind.FLAT_DISCOUNT


@dataclass(frozen=True)
class FixedSetPrice:
    old_set_total_cents: int
    new_set_total_cents: int
    kind = PromotionKind.FIXED_SET_PRICE


@dataclass(frozen=True)
class ThresholdPercent:
    min_quantity: int
    percent_bps: int
    kind = PromotionKind.THRESHOLD_PERCENT


@dataclass(frozen=True)
class ThresholdFlat:
    min_quantity: int
    amount_cents: int
    kind = PromotionKind.THRESHOLD_FLAT


Rule = Union[PercentDiscount, FlatDiscount, FixedSetPrice, ThresholdPercent, ThresholdFlat]


@dataclass(frozen=True)
class PromotionRule:
    rule: Rule
    product_ids: frozenset = frozenset()

    @property
    def kind(self) -> PromotionKind:
        return self.rule.kind

    @property
    def is_bill_level(self) -> bool:
        return not self.product_ids


def _required(value, field: str, kind: str) -> int:
    if value is None:
        raise ValidationError(f"{kind} promotion requires {field}", details={"field": field})
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if value < 0:
        raise ValidationError(f"{field} must not be negative", details={"field": field})
    return value


def _percent(value, kind: str) -> int:
    bps = _required(value, "percent_bps", kind)
    if bps > MAX_PERCENT_BPS:
        raise ValidationError("percent_bps must not exceed 10000 (100%)", details={"field": "percent_bps"})
    return bps


def rule_from_columns(
    *,
    promo_type: str,
    percent_bps=None,
    amount_cents=None,
    old_set_total_cents=None,
    new_set_total_cents=None,
    min_quantity=None,
    product_ids: Iterable[int] = (),
) -> PromotionRule:
    """
    Build a PromotionRule from flat storage columns.

    Raises ValidationError for an unknown type or a missing field the
    type needs.
    """
    try:
        kind = PromotionKind(promo_type)
    except ValueError:
        raise ValidationError(f"Unknown promotion type: {promo_type}", details={"field": "promo_type"})

    if kind is PromotionKind.PERCENT_DISCOUNT:
        rule = PercentDiscount(percent_bps=_percent(percent_bps, kind.value))
    elif kind is PromotionKind.FLAT_DISCOUNT:
        rule = FlatDiscount(amount_cents=_required(amount_cents, "amount_cents", kind.value))
    elif kind is PromotionKind.FIXED_SET_PRICE:
        rule = FixedSetPrice(
            old_set_total_cents=_required(old_set_total_cents, "old_set_total_cents", kind.value),
            new_set_total_cents=_required(new_set_total_cents, "new_set_total_cents", kind.value),
        )
    elif kind is PromotionKind.THRESHOLD_PERCENT:
        rule = ThresholdPercent(
            min_quantity=_required(min_quantity, "min_quantity", kind.value),
            percent_bps=_percent(percent_bps, kind.value),
        )
    else:
        rule = ThresholdFlat(
            min_quantity=_required(min_quantity, "min_quantity", kind.value),
            amount_cents=_required(amount_cents, "amount_cents", kind.value),
        )

    return PromotionRule(rule=rule, product_ids=frozenset(int(pid) for pid in product_ids))


def subtotal(lines: Iterable[CartLine]) -> int:
    return sum(line.line_total_cents for line in lines)


def _to_cents(amount: Decimal) -> int:
    return int(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


def _percent_of(total_cents: int, percent_bps: int) -> int:
    return _to_cents(Decimal(total_cents) * Decimal(percent_bps) / _BPS_DIVISOR)


def _matching(promotion: PromotionRule, lines) -> list[CartLine]:
    if promotion.is_bill_level:
        return list(lines)
    return [line for line in lines if line.product_id in promotion.product_ids]


def _set_is_complete(product_ids: frozenset, lines) -> bool:
    present = {line.product_id for line in lines if line.quantity > 0}
    return bool(product_ids) and product_ids <= present


def evaluate(promotion: PromotionRule, lines: Iterable[CartLine]) -> int:
    """Discount in cents that promotion grants on lines."""
    lines = list(lines)
    rule = promotion.rule
    matching = _matching(promotion, lines)
    matching_total = subtotal(matching)
    matching_quantity = sum(line.quantity for line in matching)

    if isinstance(rule, PercentDiscount):
        discount = _percent_of(matching_total, rule.percent_bps)
    elif isinstance(rule, FlatDiscount):
        if promotion.is_bill_level:
            discount = rule.amount_cents if lines else 0
        else:
            discount = rule.amount_cents * matching_quantity
    elif isinstance(rule, FixedSetPrice):
        if _set_is_complete(promotion.product_ids, lines):
            discount = rule.old_set_total_cents - rule.new_set_total_cents
        else:
            discount = 0
    elif isinstance(rule, ThresholdPercent):
        if matching_quantity >= rule.min_quantity:
            discount = _percent_of(matching_total, rule.percent_bps)
        else:
            discount = 0
    elif isinstance(rule, ThresholdFlat):
        discount = rule.amount_cents if matching_quantity >= rule.min_quantity else 0
    else:
        raise TypeError(f"Unsupported promotion rule: {rule!r}")

    return max(0, int(discount))
