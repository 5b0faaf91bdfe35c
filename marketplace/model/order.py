from ..extensions import db
from sqlalchemy.sql import func


def _f(x):
    return float(x) if x is not None else None


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(64), unique=True, nullable=False, index=True)  # e.g. "ORD-20251022-..."
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(20), default="pending", index=True)

    # Money snapshot
    subtotal = db.Column(db.Numeric(12, 2))
    discounted_subtotal = db.Column(db.Numeric(12, 2))
    seller_discount_total = db.Column(db.Numeric(12, 2))
    platform_discount_total = db.Column(db.Numeric(12, 2))
    shipping_fee = db.Column(db.Numeric(12, 2))
    shipping_discount = db.Column(db.Numeric(12, 2))
    grand_total = db.Column(db.Numeric(12, 2))

    # Discount snapshot, frozen at reservation time
    coupon_code = db.Column(db.String(64), nullable=True)
    coupon_snapshot = db.Column(db.JSON, nullable=True)
    applied_platform = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now(), index=True)

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id.asc()",
    )

    def as_api(self):
        return {
            "id": self.id,
            "reference": self.reference,
            "customer_id": self.customer_id,
            "status": self.status,
            "money": {
                "subtotal": _f(self.subtotal),
                "discounted_subtotal": _f(self.discounted_subtotal),
                "seller_discount_total": _f(self.seller_discount_total),
                "platform_discount_total": _f(self.platform_discount_total),
                "shipping_fee": _f(self.shipping_fee),
                "shipping_discount": _f(self.shipping_discount),
                "grand_total": _f(self.grand_total),
            },
            "discounts": {
                "coupon_code": self.coupon_code,
                "coupon_snapshot": self.coupon_snapshot,
                "applied_platform": self.applied_platform,
            },
            "items": [i.as_api() for i in self.items],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    product_id = db.Column(db.String(64), index=True)
    seller_id = db.Column(db.String(64), index=True)
    category_id = db.Column(db.String(64))

    unit_price = db.Column(db.Numeric(12, 2))
    quantity = db.Column(db.Integer, nullable=False)
    base = db.Column(db.Numeric(12, 2))
    seller_discount = db.Column(db.Numeric(12, 2))
    platform_discount = db.Column(db.Numeric(12, 2))
    final = db.Column(db.Numeric(12, 2))

    applied_seller = db.Column(db.JSON, nullable=True)
    applied_platform = db.Column(db.JSON, nullable=True)

    @property
    def commission_base(self):
        # platform-funded discounts never reduce what the seller is paid on
        return (self.base or 0) - (self.seller_discount or 0)

    def as_api(self):
        return {
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "category_id": self.category_id,
            "unit_price": _f(self.unit_price),
            "quantity": self.quantity,
            "pricing": {
                "base": _f(self.base),
                "seller_discount": _f(self.seller_discount),
                "platform_discount": _f(self.platform_discount),
                "final": _f(self.final),
            },
            "commission_base": _f(self.commission_base),
            "applied": {
                "seller": self.applied_seller,
                "platform": self.applied_platform,
            },
        }
