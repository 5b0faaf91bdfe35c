# marketplace/services/discount_catalog.py
"""
Loads the live discount records for a cart and converts each one into a
canonical ``DiscountRule``.

Stored rows come in two generations (start_at vs starts_at, is_active vs
status, kind vs discount_type, flat id lists vs a ``targets`` document); both
are read here and nowhere else.
"""
from __future__ import annotations

import re

import structlog
from sqlalchemy import and_, func, or_

from ..extensions import db
from ..model import Discount
from ..utils.dates import as_naive_utc, utcnow
from ..utils.money import D, parse_money, ZERO
from .types import Authority, CodeType, DiscountKind, DiscountRule, Scope

logger = structlog.get_logger()

PLATFORM_AUTHORITIES = ("platform", "admin")
DISABLED_STATUSES = ("disabled", "inactive", "paused", "expired")

_KIND_ALIASES = {
    "percentage": DiscountKind.PERCENTAGE,
    "percent": DiscountKind.PERCENTAGE,
    "flat": DiscountKind.FLAT,
    "fixed": DiscountKind.FLAT,
    "free_shipping": DiscountKind.FREE_SHIPPING,
    "free-shipping": DiscountKind.FREE_SHIPPING,
}

_SCOPE_ALIASES = {
    "product": Scope.PRODUCT,
    "category": Scope.CATEGORY,
    "store": Scope.STORE,
    "cart": Scope.STORE,
    "shipping": Scope.SHIPPING,
    "free_shipping": Scope.SHIPPING,
}


class MalformedDiscount(ValueError):
    pass


def normalize_code(value) -> str:
    return re.sub(r"\s+", "", str(value or "")).upper()


def _lower(v) -> str:
    return str(v or "").strip().lower()


# ---- SQL clauses shared with the coupon reservation ------------------------

def window_clause(now):
    start = func.coalesce(Discount.start_at, Discount.starts_at)
    end = func.coalesce(Discount.end_at, Discount.ends_at)
    return and_(
        or_(start.is_(None), start <= now),
        or_(end.is_(None), end >= now),
    )


def live_clause(now):
    status = func.lower(Discount.status)
    return and_(
        Discount.disabled_at.is_(None),
        Discount.deleted_at.is_(None),
        or_(Discount.is_active.is_(True), status == "active"),
        or_(Discount.status.is_(None), status.not_in(DISABLED_STATUSES)),
        window_clause(now),
    )


def platform_clause():
    return func.lower(Discount.authority).in_(PLATFORM_AUTHORITIES)


# ---- row -> canonical rule --------------------------------------------------

def _authority(row):
    auth = _lower(row.authority)
    if auth in PLATFORM_AUTHORITIES:
        return Authority.PLATFORM
    if auth == "seller":
        return Authority.SELLER
    if not auth and row.seller_id:
        return Authority.SELLER
    raise MalformedDiscount(f"unknown authority {row.authority!r}")


def _kind(row):
    raw = _lower(row.kind or row.discount_type)
    if raw == "seller_discount":
        raw = _lower(row.discount_type)
    kind = _KIND_ALIASES.get(raw)
    if kind is None:
        raise MalformedDiscount(f"unknown kind {raw!r}")
    return kind


def _code_type(row, code):
    ct = _lower(row.code_type)
    if ct == "coupon":
        return CodeType.COUPON
    if ct == "campaign":
        return CodeType.CAMPAIGN
    return CodeType.COUPON if code else CodeType.CAMPAIGN


def _id_set(*lists):
    out = set()
    for values in lists:
        if isinstance(values, (list, tuple)):
            out.update(str(v) for v in values if v is not None and str(v) != "")
    return frozenset(out)


def _targeting(row):
    targets = row.targets if isinstance(row.targets, dict) else {}
    legacy_products = row.product_ids if isinstance(row.product_ids, list) else []

    if _lower(row.sale_type) == "flash":
        # flash sales are bound to their explicit product list whatever the scope says;
        # an empty list matches nothing
        return Scope.PRODUCT, _id_set(legacy_products), frozenset()

    scope = _SCOPE_ALIASES.get(_lower(row.scope))
    if scope is None and targets.get("store") is True:
        scope = Scope.STORE
    return (
        scope,
        _id_set(legacy_products, targets.get("productIds")),
        _id_set(row.category_ids, targets.get("categoryIds")),
    )


def _optional_money(v):
    if v is None:
        return None
    amount = parse_money(v)
    if amount is None:
        raise MalformedDiscount(f"invalid amount {v!r}")
    return amount


def to_rule(row: Discount) -> DiscountRule:
    value = parse_money(row.value)
    if value is None:
        raise MalformedDiscount(f"invalid value {row.value!r}")

    code = normalize_code(row.code) or None
    scope, product_ids, category_ids = _targeting(row)
    authority = _authority(row)

    return DiscountRule(
        id=str(row.id),
        authority=authority,
        code_type=_code_type(row, code),
        kind=_kind(row),
        value=value,
        scope=scope,
        code=code,
        seller_id=str(row.seller_id) if row.seller_id is not None else None,
        product_ids=product_ids,
        category_ids=category_ids,
        max_discount=_optional_money(row.max_discount),
        min_cart_subtotal=_optional_money(row.min_cart_subtotal) or ZERO,
        priority=int(row.priority or 0),
        stackable_with_free_shipping=bool(row.stackable_with_free_shipping),
        updated_at=as_naive_utc(row.updated_at),
        created_at=as_naive_utc(row.created_at),
    )


def is_live(row: Discount, now) -> bool:
    status = _lower(row.status)
    if row.disabled_at is not None or row.deleted_at is not None:
        return False
    if status in DISABLED_STATUSES:
        return False
    if not (row.is_active is True or status == "active"):
        return False
    start = as_naive_utc(row.start_at or row.starts_at)
    end = as_naive_utc(row.end_at or row.ends_at)
    if start and start > now:
        return False
    if end and end < now:
        return False
    return True


def _seller_rule_relevant(rule: DiscountRule, product_ids, category_ids) -> bool:
    if rule.scope is Scope.PRODUCT:
        return not rule.product_ids.isdisjoint(product_ids)
    if rule.scope is Scope.CATEGORY:
        return not rule.category_ids.isdisjoint(category_ids)
    return rule.scope is Scope.STORE


def load_discounts(seller_ids, product_ids=(), category_ids=(), now=None):
    """
    Live platform discounts (any scope) plus live seller discounts belonging to
    the given sellers. Rows that cannot be understood are skipped and logged.
    """
    now = now or utcnow()
    seller_ids = sorted({str(s) for s in seller_ids if s})
    product_ids = frozenset(str(p) for p in product_ids if p)
    category_ids = frozenset(str(c) for c in category_ids if c)

    authority = func.lower(Discount.authority)
    ownership = [platform_clause()]
    if seller_ids:
        ownership.append(and_(
            or_(authority == "seller", Discount.authority.is_(None)),
            Discount.seller_id.in_(seller_ids),
        ))

    rows = (
        db.session.query(Discount)
        .filter(live_clause(now), or_(*ownership))
        .order_by(Discount.id.asc())
        .all()
    )

    rules = []
    for row in rows:
        if not is_live(row, now):
            continue
        try:
            rule = to_rule(row)
        except (MalformedDiscount, TypeError, ValueError) as e:
            logger.warning("discount_record_skipped", discount_id=row.id, reason=str(e))
            continue
        if rule.authority is Authority.SELLER:
            if rule.seller_id not in seller_ids:
                continue
            if not _seller_rule_relevant(rule, product_ids, category_ids):
                continue
        rules.append(rule)
    return rules


def code_clause(code):
    """Stored code compared the way ``normalize_code`` reads it (blanks dropped, uppercased)."""
    stored = Discount.code
    for blank in (" ", "\t", "\n", "\r", "\f", "\v"):
        stored = func.replace(stored, blank, "")
    return func.upper(stored) == code


def find_coupon_rows(code):
    """Platform coupon rows carrying this code, live or not, best first."""
    return (
        db.session.query(Discount)
        .filter(
            platform_clause(),
            or_(func.lower(Discount.code_type) == "coupon", Discount.code_type.is_(None)),
            code_clause(code),
            Discount.deleted_at.is_(None),
        )
        .order_by(
            Discount.priority.desc(),
            Discount.updated_at.desc(),
            Discount.created_at.desc(),
            Discount.id.desc(),
        )
        .all()
    )


def find_coupon_row(discount_id, code):
    """The platform coupon row ``discount_id``, provided it still carries ``code``."""
    try:
        row = db.session.get(Discount, int(discount_id))
    except (TypeError, ValueError):
        return None
    if row is None or row.deleted_at is not None:
        return None
    if _lower(row.authority) not in PLATFORM_AUTHORITIES or normalize_code(row.code) != code:
        return None
    if _lower(row.code_type) not in ("", "coupon"):
        return None
    return row


def minimum_subtotal(row: Discount):
    return D(row.min_cart_subtotal) if row.min_cart_subtotal is not None else ZERO
