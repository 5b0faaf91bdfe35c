# marketplace/services/pricing_service.py
from __future__ import annotations

import re

import structlog
from flask import current_app

from ..errors import InvalidCouponFormat
from ..utils.money import ZERO, parse_money
from .discount_applicator import apply_discounts
from .discount_catalog import load_discounts, normalize_code
from .discount_selector import select_discounts
from .line_normalizer import normalize_lines
from .types import PricingResult

logger = structlog.get_logger()


def validate_coupon_code(code) -> str | None:
    """Uppercased, whitespace-free code; None when nothing was supplied."""
    normalized = normalize_code(code)
    if not normalized:
        return None
    pattern = current_app.config.get("COUPON_CODE_PATTERN") or r"^[A-Z0-9_-]{3,30}$"
    if not re.match(pattern, normalized):
        raise InvalidCouponFormat(f"Invalid coupon code format: {normalized}")
    return normalized


def default_shipping_fee(subtotal, line_count: int):
    if line_count == 0:
        return ZERO
    threshold = current_app.config["FREE_SHIPPING_THRESHOLD"]
    if subtotal > threshold:
        return ZERO
    return parse_money(current_app.config["DEFAULT_SHIPPING_FEE"]) or ZERO


def _cart_items(cart):
    if isinstance(cart, dict):
        return cart.get("items") or []
    return list(cart or [])


def _requested_shipping_fee(cart):
    if not isinstance(cart, dict):
        return None
    for key in ("shippingFee", "shipping_fee", "shipping"):
        if cart.get(key) is not None:
            return parse_money(cart.get(key))
    return None


def compute_pricing(cart, coupon_code=None, *, strict=False, product_lookup=None, now=None) -> PricingResult:
    """
    Quote a cart. Read-only: nothing is written and the same inputs give the
    same result.

    ``cart`` is either a list of raw lines or a dict with ``items`` and an
    optional ``shippingFee``.
    """
    code = validate_coupon_code(coupon_code)
    normalized = normalize_lines(_cart_items(cart), product_lookup=product_lookup, strict=strict)
    lines = normalized.lines

    subtotal = sum((line.base for line in lines), ZERO)
    shipping_fee = _requested_shipping_fee(cart)
    if shipping_fee is None:
        shipping_fee = default_shipping_fee(subtotal, len(lines))

    rules = load_discounts(
        seller_ids={line.seller_id for line in lines if line.seller_id},
        product_ids={line.product_id for line in lines},
        category_ids={line.category_id for line in lines if line.category_id},
        now=now,
    ) if lines else []

    selection = select_discounts(lines, rules, coupon_code=code, subtotal=subtotal)
    result = apply_discounts(lines, selection, shipping_fee=shipping_fee, warnings=normalized.warnings)

    logger.debug(
        "cart_priced",
        lines=len(lines),
        dropped=normalized.dropped,
        subtotal=str(result.totals.subtotal),
        grand_total=str(result.totals.grand_total),
        coupon=code,
        coupon_status=result.coupon.status.value,
    )
    return result
