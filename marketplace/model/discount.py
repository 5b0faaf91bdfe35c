# --- marketplace/model/discount.py ---

from ..extensions import db
from sqlalchemy.sql import func


class Discount(db.Model):
    __tablename__ = "discount"

    id = db.Column(db.Integer, primary_key=True)

    # "seller" | "platform" (older rows: "admin", or NULL with seller_id set)
    authority = db.Column(db.String(16), nullable=True, index=True)
    # "coupon" | "campaign"; NULL means coupon when a code exists
    code_type = db.Column(db.String(16), nullable=True)
    code = db.Column(db.String(64), nullable=True, index=True)

    # "percentage" | "flat" | "free_shipping" (older rows: percent / fixed / free-shipping)
    kind = db.Column(db.String(32), nullable=True)
    discount_type = db.Column(db.String(32), nullable=True)

    # "product" | "category" | "store" | "shipping"
    scope = db.Column(db.String(16), nullable=True)
    sale_type = db.Column(db.String(16), nullable=True)  # "flash"
    seller_id = db.Column(db.String(64), nullable=True, index=True)
    product_ids = db.Column(db.JSON, nullable=True)
    category_ids = db.Column(db.JSON, nullable=True)
    targets = db.Column(db.JSON, nullable=True)  # {"productIds": [], "categoryIds": [], "store": bool}

    value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    max_discount = db.Column(db.Numeric(12, 2), nullable=True)
    min_cart_subtotal = db.Column(db.Numeric(12, 2), nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=0)
    stackable_with_free_shipping = db.Column(db.Boolean, nullable=False, default=False)

    # both activity shapes exist in stored data
    is_active = db.Column(db.Boolean, nullable=True)
    status = db.Column(db.String(16), nullable=True, index=True)
    start_at = db.Column(db.DateTime, nullable=True)
    end_at = db.Column(db.DateTime, nullable=True)
    starts_at = db.Column(db.DateTime, nullable=True)
    ends_at = db.Column(db.DateTime, nullable=True)
    disabled_at = db.Column(db.DateTime, nullable=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    # usage caps; used_count is only written by the coupon reservation path
    usage_limit_total = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)
    per_user_limit = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    redemptions = db.relationship("CouponRedemption", back_populates="discount", lazy="selectin")

    def as_api(self):
        return {
            "id": self.id,
            "authority": self.authority,
            "code_type": self.code_type,
            "code": self.code,
            "kind": self.kind or self.discount_type,
            "scope": self.scope,
            "value": float(self.value or 0),
            "max_discount": float(self.max_discount) if self.max_discount is not None else None,
            "min_cart_subtotal": float(self.min_cart_subtotal) if self.min_cart_subtotal is not None else None,
            "priority": self.priority,
            "usage_limit_total": self.usage_limit_total,
            "used_count": self.used_count,
            "per_user_limit": self.per_user_limit,
        }


class CouponRedemption(db.Model):
    """Per-customer usage counter for one coupon."""

    __tablename__ = "coupon_redemption"
    __table_args__ = (
        db.UniqueConstraint("discount_id", "customer_id", name="uq_coupon_redemption_customer"),
    )

    id = db.Column(db.Integer, primary_key=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discount.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)
    last_order_reference = db.Column(db.String(64), nullable=True)
    last_code = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    discount = db.relationship("Discount", back_populates="redemptions")


class CouponRedemptionEvent(db.Model):
    """One row per (coupon, customer, order); the unique key is the idempotency claim."""

    __tablename__ = "coupon_redemption_event"
    __table_args__ = (
        db.UniqueConstraint(
            "discount_id", "customer_id", "order_reference", name="uq_coupon_redemption_event_order"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discount.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = db.Column(db.String(64), nullable=False)
    order_reference = db.Column(db.String(64), nullable=False)
    code = db.Column(db.String(64), nullable=False)
    outcome = db.Column(db.JSON, nullable=True)  # reservation snapshot replayed on retry
    created_at = db.Column(db.DateTime, server_default=func.now())
