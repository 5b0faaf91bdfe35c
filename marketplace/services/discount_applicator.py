# marketplace/services/discount_applicator.py
"""
Turns a ``Selection`` into money.

Order:
  1) seller discount per line, on the line base
  2) platform price discount on what is left after the seller discount
     (percentage per line, or a flat amount prorated across eligible lines)
  3) shipping: free shipping zeroes the fee
"""
from __future__ import annotations

from decimal import Decimal

from ..errors import UnbalancedAllocationInternalError
from ..utils.money import D, ZERO, clamp, round_money
from .types import (
    AppliedDiscount,
    DiscountKind,
    DiscountRule,
    LinePricing,
    PricingResult,
    PricingTotals,
    Selection,
)


def percentage_amount(base: Decimal, rate: Decimal, max_discount: Decimal | None = None) -> Decimal:
    amount = round_money(base * rate / Decimal(100))
    if max_discount is not None:
        amount = min(amount, max_discount)
    return clamp(amount, ZERO, base)


def flat_amount(base: Decimal, value: Decimal, max_discount: Decimal | None = None) -> Decimal:
    amount = value if max_discount is None else min(value, max_discount)
    return clamp(round_money(amount), ZERO, base)


def prorate(amount: Decimal, weights) -> list:
    """
    Split ``amount`` across ``weights`` in proportion, in cents. Lines are walked
    in order; each takes its share of what is still unallocated relative to the
    weight still unvisited, and the last weighted line takes the remainder.
    The shares always sum to ``min(amount, sum(weights))``.
    """
    weights = [round_money(w) if w > 0 else ZERO for w in weights]
    shares = [ZERO] * len(weights)
    pool = sum(weights, ZERO)
    remaining = clamp(round_money(amount), ZERO, pool)
    target = remaining

    weighted = [i for i, w in enumerate(weights) if w > 0]
    if not weighted or remaining == 0:
        return shares

    last = weighted[-1]
    for i in weighted:
        w = weights[i]
        if i == last:
            share = remaining
        else:
            share = round_money(remaining * w / pool)
        share = clamp(share, ZERO, w)
        shares[i] = share
        remaining -= share
        pool -= w

    allocated = sum(shares, ZERO)
    if allocated != target:
        raise UnbalancedAllocationInternalError(
            f"prorated {allocated} but expected {target}"
        )
    return shares


def seller_discount_amount(base: Decimal, rule: DiscountRule | None) -> Decimal:
    if rule is None:
        return ZERO
    if rule.kind is DiscountKind.PERCENTAGE:
        return percentage_amount(base, rule.value, rule.max_discount)
    if rule.kind is DiscountKind.FLAT:
        return flat_amount(base, rule.value, rule.max_discount)
    if rule.kind is DiscountKind.FREE_SHIPPING:
        return ZERO
    raise AssertionError(f"unhandled discount kind {rule.kind!r}")


def platform_discount_amounts(remainders, eligible, rule: DiscountRule | None) -> list:
    """Per-line platform discount on the seller-discounted remainders."""
    if rule is None:
        return [ZERO] * len(remainders)
    weights = [r if ok else ZERO for r, ok in zip(remainders, eligible)]

    if rule.kind is DiscountKind.PERCENTAGE:
        amounts = [percentage_amount(w, rule.value) for w in weights]
        total = sum(amounts, ZERO)
        if rule.max_discount is not None and total > rule.max_discount:
            # the cap is a cart-level cap; spread it like a flat discount
            return prorate(rule.max_discount, weights)
        return amounts
    if rule.kind is DiscountKind.FLAT:
        nominal = rule.value if rule.max_discount is None else min(rule.value, rule.max_discount)
        return prorate(nominal, weights)
    if rule.kind is DiscountKind.FREE_SHIPPING:
        return [ZERO] * len(remainders)
    raise AssertionError(f"unhandled discount kind {rule.kind!r}")


def apply_discounts(lines, selection: Selection, shipping_fee=ZERO, warnings=()) -> PricingResult:
    lines = tuple(lines)
    shipping_fee = max(ZERO, round_money(D(shipping_fee)))

    # 1) seller
    bases = [round_money(line.base) for line in lines]
    seller_amounts = [
        seller_discount_amount(base, rule)
        for base, rule in zip(bases, selection.seller_discounts)
    ]
    remainders = [base - s for base, s in zip(bases, seller_amounts)]

    # 2) platform
    price_rule = selection.price_discount
    eligible = [
        price_rule is not None and price_rule.applies_to_line(line) and remainder > 0
        for line, remainder in zip(lines, remainders)
    ]
    platform_amounts = platform_discount_amounts(remainders, eligible, price_rule)
    applied_platform = AppliedDiscount.from_rule(price_rule) if price_rule else None

    priced = []
    for i, line in enumerate(lines):
        platform = clamp(platform_amounts[i], ZERO, remainders[i])
        seller_rule = selection.seller_discounts[i]
        priced.append(LinePricing(
            line=line,
            base=bases[i],
            seller_discount=seller_amounts[i],
            platform_discount=platform,
            final=bases[i] - seller_amounts[i] - platform,
            applied_seller=AppliedDiscount.from_rule(seller_rule) if seller_rule else None,
            applied_platform=applied_platform if platform > 0 else None,
        ))

    # 3) shipping
    shipping_discount = shipping_fee if selection.free_shipping is not None else ZERO
    shipping_due = max(ZERO, shipping_fee - shipping_discount)

    discounted_subtotal = sum((lp.final for lp in priced), ZERO)
    totals = PricingTotals(
        subtotal=sum(bases, ZERO),
        discounted_subtotal=discounted_subtotal,
        seller_discount_total=sum((lp.seller_discount for lp in priced), ZERO),
        platform_discount_total=sum((lp.platform_discount for lp in priced), ZERO),
        shipping_fee=shipping_fee,
        shipping_discount=shipping_discount,
        shipping_due=shipping_due,
        grand_total=discounted_subtotal + shipping_due,
    )

    return PricingResult(
        lines=tuple(priced),
        totals=totals,
        price_discount=applied_platform,
        free_shipping=AppliedDiscount.from_rule(selection.free_shipping) if selection.free_shipping else None,
        coupon=selection.coupon,
        warnings=tuple(warnings),
    )
