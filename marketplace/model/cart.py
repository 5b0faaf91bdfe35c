# marketplace/model/cart.py
from __future__ import annotations
from sqlalchemy.sql import func
from ..extensions import db


class Cart(db.Model):
    __tablename__ = "cart"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    status = db.Column(db.String(16), default="active", index=True)

    # coupon the customer applied; priced again on every quote
    coupon_code = db.Column(db.String(64), nullable=True)
    coupon_applied_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    items = db.relationship(
        "CartItem",
        backref="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.id.asc()",
    )

    def raw_lines(self):
        return [i.as_line() for i in self.items]

    def as_api(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "status": self.status,
            "coupon": {
                "code": self.coupon_code,
                "applied_at": self.coupon_applied_at.isoformat() if self.coupon_applied_at else None,
            } if self.coupon_code else None,
            "items": [i.as_line() for i in self.items],
        }


class CartItem(db.Model):
    __tablename__ = "cart_item"

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("cart.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    # client-side snapshot; the product lookup overrides it when pricing
    price = db.Column(db.Numeric(12, 2), nullable=True)
    seller_id = db.Column(db.String(64), nullable=True)
    category_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now())

    def as_line(self):
        return {
            "productId": self.product_id,
            "quantity": self.quantity,
            "price": float(self.price) if self.price is not None else None,
            "sellerId": self.seller_id,
            "categoryId": self.category_id,
        }
