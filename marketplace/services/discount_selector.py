# marketplace/services/discount_selector.py
"""
Decides which discounts apply to a cart.

- Seller: at most ONE discount per line, first non-empty tier wins
  (product > category > store-wide).
- Platform: at most ONE price discount (coupon OR campaign, coupon preempts),
  plus an independent free-shipping discount.
- Seller and platform discounts always stack; free shipping stacks with a
  platform price discount only when that discount allows it.
"""
from __future__ import annotations

from decimal import Decimal

from ..utils.money import ZERO, to_float_money
from .types import (
    Authority,
    CartLine,
    CodeType,
    CouponOutcome,
    CouponStatus,
    DiscountKind,
    DiscountRule,
    Scope,
    Selection,
)


def pick_highest_priority(candidates):
    """priority desc, then updated_at desc, then created_at desc."""
    candidates = [c for c in candidates if c is not None]
    if not candidates:
        return None
    return max(candidates, key=DiscountRule.ordering_key)


def _seller_tiers(line: CartLine, rules):
    yield [r for r in rules if r.scope is Scope.PRODUCT and line.product_id in r.product_ids]
    if line.category_id is not None:
        yield [r for r in rules if r.scope is Scope.CATEGORY and line.category_id in r.category_ids]
    yield [r for r in rules if r.scope is Scope.STORE]


def best_seller_discount(line: CartLine, seller_rules):
    if not line.seller_id:
        return None
    own = [r for r in seller_rules if r.seller_id == line.seller_id]
    for tier in _seller_tiers(line, own):
        if tier:
            return pick_highest_priority(tier)
    return None


def _coupon_rejection(rule: DiscountRule, subtotal: Decimal, product_ids, category_ids):
    if not rule.targets_cart(product_ids, category_ids):
        return "Coupon does not apply to the items in this cart."
    if not rule.eligible_for_subtotal(subtotal):
        return f"Cart subtotal must be at least {to_float_money(rule.min_cart_subtotal):.2f}."
    return None


def _match_coupon(platform_rules, code, subtotal, product_ids, category_ids):
    """Returns (coupon rule or None, rejection reason or None)."""
    matches = [r for r in platform_rules if r.code_type is CodeType.COUPON and r.code == code]
    if not matches:
        return None, None
    eligible = [
        r for r in matches
        if _coupon_rejection(r, subtotal, product_ids, category_ids) is None
    ]
    if eligible:
        return pick_highest_priority(eligible), None
    best = pick_highest_priority(matches)
    return None, _coupon_rejection(best, subtotal, product_ids, category_ids)


def _is_campaign(rule: DiscountRule) -> bool:
    return rule.code_type is CodeType.CAMPAIGN and not rule.code


def select_discounts(lines, rules, coupon_code=None, subtotal=None) -> Selection:
    lines = tuple(lines)
    if subtotal is None:
        subtotal = sum((line.base for line in lines), ZERO)
    product_ids = frozenset(line.product_id for line in lines)
    category_ids = frozenset(line.category_id for line in lines if line.category_id is not None)

    # ---- seller, per line --------------------------------------------------
    seller_rules = [
        r for r in rules
        if r.authority is Authority.SELLER
        and r.kind is not DiscountKind.FREE_SHIPPING
        and r.eligible_for_subtotal(subtotal)
    ]
    seller_discounts = tuple(best_seller_discount(line, seller_rules) for line in lines)

    # ---- platform price discount ------------------------------------------
    platform_rules = [r for r in rules if r.authority is Authority.PLATFORM]

    coupon, rejection = (None, None)
    if coupon_code:
        coupon, rejection = _match_coupon(platform_rules, coupon_code, subtotal, product_ids, category_ids)

    price_coupon = coupon if coupon is not None and not coupon.is_shipping else None
    shipping_coupon = coupon if coupon is not None and coupon.is_shipping else None

    price_discount = price_coupon
    if price_discount is None:
        price_discount = pick_highest_priority(
            r for r in platform_rules
            if _is_campaign(r)
            and not r.is_shipping
            and r.targets_cart(product_ids, category_ids)
            and r.eligible_for_subtotal(subtotal)
        )

    # ---- free shipping -----------------------------------------------------
    shipping_campaigns = [
        r for r in platform_rules
        if _is_campaign(r) and r.is_shipping and r.eligible_for_subtotal(subtotal)
    ]
    free_shipping = pick_highest_priority(shipping_campaigns + [shipping_coupon])
    if free_shipping is not None and price_discount is not None \
            and not price_discount.stackable_with_free_shipping:
        free_shipping = None

    # ---- coupon outcome ----------------------------------------------------
    outcome = CouponOutcome()
    if coupon_code:
        if coupon is None and rejection is None:
            outcome = CouponOutcome(
                requested=coupon_code,
                status=CouponStatus.NOT_FOUND,
                message="Invalid coupon code.",
            )
        elif coupon is None:
            outcome = CouponOutcome(
                requested=coupon_code,
                status=CouponStatus.NOT_ELIGIBLE,
                message=rejection,
            )
        elif coupon is price_discount or coupon is free_shipping:
            outcome = CouponOutcome(
                requested=coupon_code,
                status=CouponStatus.APPLIED,
                message="Coupon applied.",
                discount_id=coupon.id,
            )
        else:
            outcome = CouponOutcome(
                requested=coupon_code,
                status=CouponStatus.NOT_ELIGIBLE,
                message="Free shipping coupon cannot be combined with the current promotion.",
                discount_id=coupon.id,
            )

    return Selection(
        seller_discounts=seller_discounts,
        price_discount=price_discount,
        free_shipping=free_shipping,
        coupon=outcome,
    )
