# marketplace/services/cart_service.py
from ..errors import CouponNotEligible, CouponNotFound, InvalidCouponFormat
from ..extensions import begin_write, db
from ..model import Cart
from ..utils.dates import utcnow
from .pricing_service import compute_pricing, validate_coupon_code
from .types import CouponStatus


def get_cart(customer_id):
    return Cart.query.filter_by(customer_id=str(customer_id)).first()


def get_or_create_cart(customer_id) -> Cart:
    cart = get_cart(customer_id)
    if not cart:
        cart = Cart(customer_id=str(customer_id), status="active")
        db.session.add(cart)
        db.session.flush()
    return cart


def cart_payload(cart: Cart, shipping_fee=None):
    payload = {"items": cart.raw_lines() if cart else []}
    if shipping_fee is not None:
        payload["shippingFee"] = shipping_fee
    return payload


def quote_cart(customer_id, items=None, coupon_code=None, shipping_fee=None, product_lookup=None):
    """
    Price explicit ``items`` (buy-now) or the customer's stored cart. Without
    an explicit code the coupon stored on the cart is used.
    """
    cart = get_cart(customer_id)
    if items:
        payload = {"items": items}
        if shipping_fee is not None:
            payload["shippingFee"] = shipping_fee
    else:
        payload = cart_payload(cart, shipping_fee)
    code = coupon_code or (cart.coupon_code if cart else None)
    return compute_pricing(payload, code, product_lookup=product_lookup)


def apply_cart_coupon(customer_id, code, product_lookup=None) -> Cart:
    """
    Store a coupon on the cart after checking it would apply right now:
    format, live record, cart targeting and minimum subtotal.
    """
    normalized = validate_coupon_code(code)
    if not normalized:
        raise InvalidCouponFormat("Coupon code is required")

    begin_write(db.session)
    cart = get_or_create_cart(customer_id)
    if not cart.items:
        db.session.commit()
        raise CouponNotEligible("Add items to the cart before applying a coupon", code=normalized)

    pricing = compute_pricing(cart_payload(cart), normalized, product_lookup=product_lookup)
    outcome = pricing.coupon
    if outcome.status is CouponStatus.NOT_FOUND:
        raise CouponNotFound(outcome.message, code=normalized)
    if not outcome.applied:
        raise CouponNotEligible(outcome.message, code=normalized)

    cart.coupon_code = normalized
    cart.coupon_applied_at = utcnow()
    db.session.commit()
    return cart


def clear_cart_coupon(customer_id) -> Cart:
    begin_write(db.session)
    cart = get_or_create_cart(customer_id)
    cart.coupon_code = None
    cart.coupon_applied_at = None
    db.session.commit()
    return cart
