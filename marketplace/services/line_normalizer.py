# marketplace/services/line_normalizer.py
"""
Turns upstream cart/order lines into canonical ``CartLine`` objects.

Accepted shapes (any mix):
  {"productId": "7", "quantity": 2, "price": 10, "sellerId": "s1", "categoryId": "c1"}
  {"product_id": 7, "qty": 2, "unit_price": "10.00", "seller_id": "s1"}
  {"product": {"_id": "7", "price": 10, "userId": "s1", "categoryId": "c1"}, "qty": 2}
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal

import structlog

from ..errors import MissingSellerMapping
from ..extensions import db
from ..utils.money import parse_money
from .types import CartLine

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProductInfo:
    seller_id: str | None = None
    category_id: str | None = None
    price: Decimal | None = None


@dataclass(frozen=True)
class NormalizedLines:
    lines: tuple
    warnings: tuple = ()
    dropped: int = 0


def _str_or_none(v):
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _first(*values):
    for v in values:
        if v is not None and v != "":
            return v
    return None


def _nested(item):
    product = item.get("product")
    return product if isinstance(product, dict) else {}


def resolve_product_id(item):
    nested = _nested(item)
    return _str_or_none(_first(
        item.get("productId"),
        item.get("product_id"),
        nested.get("_id"),
        nested.get("id"),
        nested.get("productId"),
    ))


def resolve_quantity(item) -> int:
    raw = _first(item.get("quantity"), item.get("qty"))
    try:
        q = float(raw)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(q):
        return 1
    return max(1, int(math.floor(q)))


def _price_candidates(item, info: ProductInfo | None):
    nested = _nested(item)
    if info is not None:
        yield info.price
    yield item.get("price")
    yield item.get("unit_price")
    yield item.get("unitPrice")
    yield nested.get("price")
    yield nested.get("sellingPrice")


def resolve_unit_price(item, info: ProductInfo | None = None):
    """Product lookup price first (authoritative), then whatever the client sent."""
    for candidate in _price_candidates(item, info):
        if candidate is None:
            continue
        return parse_money(candidate)
    return None


def resolve_seller_id(item, info: ProductInfo | None = None):
    nested = _nested(item)
    return _str_or_none(_first(
        item.get("sellerId"),
        item.get("seller_id"),
        nested.get("sellerId"),
        nested.get("userId"),
        info.seller_id if info else None,
    ))


def resolve_category_id(item, info: ProductInfo | None = None):
    nested = _nested(item)
    return _str_or_none(_first(
        item.get("categoryId"),
        item.get("category_id"),
        nested.get("categoryId"),
        nested.get("category_id"),
        info.category_id if info else None,
    ))


def lookup_products(product_ids):
    """Product lookup backed by the ``product`` table."""
    from ..model import Product

    numeric = sorted({int(pid) for pid in product_ids if str(pid).isdigit()})
    if not numeric:
        return {}
    rows = db.session.query(Product).filter(Product.id.in_(numeric)).all()
    out = {}
    for p in rows:
        price = p.price if p.price is not None else p.selling_price
        out[str(p.id)] = ProductInfo(
            seller_id=_str_or_none(p.seller_id),
            category_id=_str_or_none(p.category_id),
            price=price,
        )
    return out


def normalize_lines(raw_items, product_lookup=None, strict: bool = False) -> NormalizedLines:
    """
    Lines without a usable unit price are dropped. A line whose seller cannot be
    resolved raises ``MissingSellerMapping`` when ``strict`` (order creation);
    for quotes it is kept without a seller and reported in ``warnings``.
    """
    items = [it for it in (raw_items or []) if isinstance(it, dict)]
    product_ids = [pid for pid in (resolve_product_id(it) for it in items) if pid]
    catalog = (product_lookup or lookup_products)(product_ids) if product_ids else {}

    lines = []
    warnings = []
    dropped = 0
    for item in items:
        product_id = resolve_product_id(item)
        if not product_id:
            dropped += 1
            continue

        info = catalog.get(product_id)
        price = resolve_unit_price(item, info)
        if price is None:
            logger.debug("cart_line_dropped", product_id=product_id, reason="invalid_price")
            dropped += 1
            continue

        seller_id = resolve_seller_id(item, info)
        if not seller_id:
            if strict:
                raise MissingSellerMapping(
                    f"Product {product_id} missing seller mapping", product_id=product_id
                )
            logger.warning("seller_mapping_missing", product_id=product_id)
            warnings.append(f"product {product_id} has no seller mapping; seller discounts skipped")

        lines.append(CartLine(
            product_id=product_id,
            seller_id=seller_id,
            category_id=resolve_category_id(item, info),
            unit_price=price,
            quantity=resolve_quantity(item),
        ))

    return NormalizedLines(lines=tuple(lines), warnings=tuple(warnings), dropped=dropped)
