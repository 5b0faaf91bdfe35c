# marketplace/order/routes.py
from flask import request, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity

from ..extensions import begin_write, db
from ..model import Order
from ..utils.api import api_ok, api_error
from ..services.cart_service import cart_payload, get_cart
from ..services.order_service import create_order
from . import bp

def ok(msg, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r
def err(msg, status=400, data=None):
    r = jsonify(api_error(msg, data)); r.status_code = status; return r


@bp.post("")
@jwt_required()
def create():
    """
    Body:
      - items: [...]          buy-now lines; omitted -> the stored cart
      - couponCode: "SAVE10"  omitted -> the coupon stored on the cart
      - shippingFee: 150
      - reference: "ORD-..."  client retry key
    """
    customer_id = str(get_jwt_identity())
    body = request.get_json(silent=True) or {}

    items = body.get("items")
    shipping = body.get("shippingFee", body.get("shipping_fee"))
    code = body.get("couponCode") or body.get("coupon_code")
    reference = body.get("reference") or body.get("orderReference")

    begin_write(db.session)
    if reference:
        existing = Order.query.filter_by(reference=reference, customer_id=customer_id).first()
        if existing:
            return ok("Order already created", {"order": existing.as_api()})

    source_cart = None
    if items:
        payload = {"items": items}
        if shipping is not None:
            payload["shippingFee"] = shipping
    else:
        source_cart = get_cart(customer_id)
        if not source_cart or not source_cart.items:
            return err("Cart is empty", 400)
        payload = cart_payload(source_cart, shipping)
        code = code or source_cart.coupon_code

    order = create_order(
        customer_id,
        payload,
        coupon_code=code,
        order_reference=reference,
        source_cart=source_cart,
    )
    return ok("Order created", {"order": order.as_api()}, 201)


@bp.get("/<reference>")
@jwt_required()
def detail(reference):
    customer_id = str(get_jwt_identity())
    order = Order.query.filter_by(reference=reference, customer_id=customer_id).first()
    if not order:
        return err("Order not found", 404)
    return ok("Order", {"order": order.as_api()})
