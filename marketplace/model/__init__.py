# ------ marketplace/model/__init__.py ------

from .product import Product
from .cart import Cart, CartItem
from .discount import Discount, CouponRedemption, CouponRedemptionEvent
from .order import Order, OrderItem

__all__ = [
    "Product",
    "Cart",
    "CartItem",
    "Discount",
    "CouponRedemption",
    "CouponRedemptionEvent",
    "Order",
    "OrderItem",
]
