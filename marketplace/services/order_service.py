# marketplace/services/order_service.py
"""
Order assembly: price strictly, reserve the applied coupon and persist the
order snapshot, all in one transaction.
"""
from __future__ import annotations

import uuid

import structlog

from ..errors import CouponNotEligible, CouponNotFound
from ..extensions import begin_write, db
from ..model import Order, OrderItem
from ..utils.dates import utcnow
from .coupon_reservation import reserve_coupon
from .pricing_service import compute_pricing
from .types import CouponStatus

logger = structlog.get_logger()


def generate_order_reference(now=None):
    now = now or utcnow()
    return f"ORD-{now:%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:6].upper()}"


def _require_applied_coupon(pricing):
    """An explicitly requested coupon must apply; never drop it silently."""
    outcome = pricing.coupon
    if not outcome.requested or outcome.applied:
        return
    if outcome.status is CouponStatus.NOT_FOUND:
        raise CouponNotFound(outcome.message, code=outcome.requested)
    raise CouponNotEligible(outcome.message, code=outcome.requested)


def _order_from_pricing(customer_id, reference, pricing, reservation):
    t = pricing.totals
    order = Order(
        reference=reference,
        customer_id=customer_id,
        status="pending",
        subtotal=t.subtotal,
        discounted_subtotal=t.discounted_subtotal,
        seller_discount_total=t.seller_discount_total,
        platform_discount_total=t.platform_discount_total,
        shipping_fee=t.shipping_fee,
        shipping_discount=t.shipping_discount,
        grand_total=t.grand_total,
        coupon_code=reservation.code if reservation else None,
        coupon_snapshot=reservation.snapshot if reservation else None,
        applied_platform={
            "price_discount": pricing.price_discount.as_dict() if pricing.price_discount else None,
            "free_shipping": pricing.free_shipping.as_dict() if pricing.free_shipping else None,
        },
    )
    for lp in pricing.lines:
        order.items.append(OrderItem(
            product_id=lp.line.product_id,
            seller_id=lp.line.seller_id,
            category_id=lp.line.category_id,
            unit_price=lp.line.unit_price,
            quantity=lp.line.quantity,
            base=lp.base,
            seller_discount=lp.seller_discount,
            platform_discount=lp.platform_discount,
            final=lp.final,
            applied_seller=lp.applied_seller.as_dict() if lp.applied_seller else None,
            applied_platform=lp.applied_platform.as_dict() if lp.applied_platform else None,
        ))
    return order


def create_order(customer_id, cart, coupon_code=None, order_reference=None,
                 product_lookup=None, source_cart=None, now=None) -> Order:
    """
    Create an order for ``customer_id`` from ``cart`` (raw lines or a dict with
    ``items``/``shippingFee``). Re-submitting a committed ``order_reference``
    returns the existing order. Any failure rolls the whole transaction back,
    coupon reservation included.
    """
    customer_id = str(customer_id)
    reference = (order_reference or "").strip() or generate_order_reference(now)

    begin_write(db.session)
    existing = Order.query.filter_by(reference=reference).first()
    if existing is not None:
        if existing.customer_id != customer_id:
            raise ValueError("order reference already in use")
        return existing

    log = logger.bind(customer_id=customer_id, order_reference=reference)
    try:
        pricing = compute_pricing(cart, coupon_code, strict=True, product_lookup=product_lookup, now=now)
        if not pricing.lines:
            raise ValueError("cart is empty")
        _require_applied_coupon(pricing)

        reservation = None
        applied = pricing.applied_coupon
        if applied is not None:
            reservation = reserve_coupon(
                applied.code, customer_id, reference, pricing.totals.subtotal, now=now,
                discount_id=applied.discount_id,
            )

        order = _order_from_pricing(customer_id, reference, pricing, reservation)
        db.session.add(order)

        if source_cart is not None:
            source_cart.items.clear()
            source_cart.coupon_code = None
            source_cart.coupon_applied_at = None

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log.info(
        "order_created",
        order_id=order.id,
        grand_total=str(pricing.totals.grand_total),
        coupon=reservation.code if reservation else None,
    )
    return order
