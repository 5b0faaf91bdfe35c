# marketplace/cart/routes.py
from __future__ import annotations
from flask import request, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity

from ..utils.api import api_ok, api_error
from ..services.cart_service import apply_cart_coupon, clear_cart_coupon, get_cart, quote_cart
from . import bp

# ---- standard API response format ------------------------------------------
def ok(msg, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r
def err(msg, status=400, data=None):
    r = jsonify(api_error(msg, data)); r.status_code = status; return r


def _pricing_request():
    """GET reads the stored cart (?coupon=); POST may send buy-now items."""
    if request.method == "GET":
        return None, request.args.get("coupon") or request.args.get("couponCode"), None
    body = request.get_json(silent=True) or {}
    items = body.get("items")
    if items is not None and not isinstance(items, list):
        raise ValueError("items must be a list")
    code = body.get("couponCode") or body.get("coupon_code") or body.get("coupon")
    shipping = body.get("shippingFee", body.get("shipping_fee"))
    return items, code, shipping


# ---- pricing ---------------------------------------------------------------

@bp.route("/pricing", methods=["GET", "POST"])
@jwt_required()
def pricing():
    customer_id = str(get_jwt_identity())
    items, code, shipping = _pricing_request()
    result = quote_cart(customer_id, items=items, coupon_code=code, shipping_fee=shipping)
    return ok("Cart priced", result.as_dict())


# ---- coupon ----------------------------------------------------------------

@bp.post("/coupon")
@jwt_required()
def apply_coupon():
    customer_id = str(get_jwt_identity())
    body = request.get_json(silent=True) or {}
    code = body.get("code") or body.get("couponCode")
    if not code:
        return err("code is required", 400, {"code": "invalid_coupon_format"})

    cart = apply_cart_coupon(customer_id, code)
    result = quote_cart(customer_id)
    return ok("Coupon applied", {"cart": cart.as_api(), "pricing": result.as_dict()})


@bp.delete("/coupon")
@jwt_required()
def remove_coupon():
    customer_id = str(get_jwt_identity())
    cart = clear_cart_coupon(customer_id)
    return ok("Coupon removed", {"cart": cart.as_api()})


@bp.get("")
@jwt_required()
def show():
    cart = get_cart(str(get_jwt_identity()))
    return ok("Cart", {"cart": cart.as_api() if cart else None})
