"""
Canonical pricing types.

Everything past the line normalizer and the catalog reader works on these
shapes only; legacy field names never reach the selector or the applicator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from ..utils.money import ZERO, to_float_money


class Authority(str, Enum):
    SELLER = "seller"
    PLATFORM = "platform"


class CodeType(str, Enum):
    COUPON = "coupon"
    CAMPAIGN = "campaign"


class DiscountKind(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"
    FREE_SHIPPING = "free_shipping"


class Scope(str, Enum):
    PRODUCT = "product"
    CATEGORY = "category"
    STORE = "store"
    SHIPPING = "shipping"


class CouponStatus(str, Enum):
    NONE = "none"
    APPLIED = "applied"
    NOT_ELIGIBLE = "not_eligible"
    NOT_FOUND = "not_found"


_EPOCH = datetime.min


@dataclass(frozen=True)
class DiscountRule:
    id: str
    authority: Authority
    code_type: CodeType
    kind: DiscountKind
    value: Decimal
    scope: Scope | None = None
    code: str | None = None
    seller_id: str | None = None
    product_ids: frozenset = frozenset()
    category_ids: frozenset = frozenset()
    max_discount: Decimal | None = None
    min_cart_subtotal: Decimal = ZERO
    priority: int = 0
    stackable_with_free_shipping: bool = False
    updated_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_shipping(self) -> bool:
        return self.kind is DiscountKind.FREE_SHIPPING or self.scope is Scope.SHIPPING

    def ordering_key(self):
        # priority desc, updated desc, created desc, id as the last resort
        return (
            self.priority,
            self.updated_at or _EPOCH,
            self.created_at or _EPOCH,
            self.id,
        )

    def eligible_for_subtotal(self, subtotal: Decimal) -> bool:
        return subtotal >= self.min_cart_subtotal

    def targets_cart(self, product_ids, category_ids) -> bool:
        if self.scope is Scope.PRODUCT:
            return not self.product_ids.isdisjoint(product_ids)
        if self.scope is Scope.CATEGORY:
            return not self.category_ids.isdisjoint(category_ids)
        return True

    def applies_to_line(self, line: CartLine) -> bool:
        if self.scope is Scope.PRODUCT:
            return line.product_id in self.product_ids
        if self.scope is Scope.CATEGORY:
            return line.category_id is not None and line.category_id in self.category_ids
        return True


@dataclass(frozen=True)
class CartLine:
    product_id: str
    seller_id: str | None
    category_id: str | None
    unit_price: Decimal
    quantity: int

    @property
    def base(self) -> Decimal:
        return self.unit_price * self.quantity

    def as_dict(self):
        return {
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "category_id": self.category_id,
            "unit_price": to_float_money(self.unit_price),
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class AppliedDiscount:
    discount_id: str
    authority: Authority
    kind: DiscountKind
    value: Decimal
    code_type: CodeType
    scope: Scope | None = None
    code: str | None = None
    seller_id: str | None = None

    @classmethod
    def from_rule(cls, rule: DiscountRule):
        return cls(
            discount_id=rule.id,
            authority=rule.authority,
            kind=rule.kind,
            value=rule.value,
            code_type=rule.code_type,
            scope=rule.scope,
            code=rule.code,
            seller_id=rule.seller_id,
        )

    def as_dict(self):
        return {
            "discount_id": self.discount_id,
            "authority": self.authority.value,
            "kind": self.kind.value,
            "value": float(self.value),
            "code_type": self.code_type.value,
            "scope": self.scope.value if self.scope else None,
            "code": self.code,
            "seller_id": self.seller_id,
        }


@dataclass(frozen=True)
class CouponOutcome:
    requested: str | None = None
    status: CouponStatus = CouponStatus.NONE
    message: str = ""
    discount_id: str | None = None

    @property
    def applied(self) -> bool:
        return self.status is CouponStatus.APPLIED

    def as_dict(self):
        return {
            "requested": self.requested,
            "status": self.status.value,
            "message": self.message,
            "discount_id": self.discount_id,
        }


@dataclass(frozen=True)
class Selection:
    seller_discounts: tuple
    price_discount: DiscountRule | None = None
    free_shipping: DiscountRule | None = None
    coupon: CouponOutcome = field(default_factory=CouponOutcome)


@dataclass(frozen=True)
class LinePricing:
    line: CartLine
    base: Decimal
    seller_discount: Decimal
    platform_discount: Decimal
    final: Decimal
    applied_seller: AppliedDiscount | None = None
    applied_platform: AppliedDiscount | None = None

    def as_dict(self):
        return {
            **self.line.as_dict(),
            "pricing": {
                "base": to_float_money(self.base),
                "seller_discount": to_float_money(self.seller_discount),
                "platform_discount": to_float_money(self.platform_discount),
                "final": to_float_money(self.final),
            },
            "applied": {
                "seller": self.applied_seller.as_dict() if self.applied_seller else None,
                "platform": self.applied_platform.as_dict() if self.applied_platform else None,
            },
        }


@dataclass(frozen=True)
class PricingTotals:
    subtotal: Decimal
    discounted_subtotal: Decimal
    seller_discount_total: Decimal
    platform_discount_total: Decimal
    shipping_fee: Decimal
    shipping_discount: Decimal
    shipping_due: Decimal
    grand_total: Decimal

    def as_dict(self):
        return {
            "subtotal": to_float_money(self.subtotal),
            "discounted_subtotal": to_float_money(self.discounted_subtotal),
            "seller_discount_total": to_float_money(self.seller_discount_total),
            "platform_discount_total": to_float_money(self.platform_discount_total),
            "shipping_fee": to_float_money(self.shipping_fee),
            "shipping_discount": to_float_money(self.shipping_discount),
            "shipping_due": to_float_money(self.shipping_due),
            "grand_total": to_float_money(self.grand_total),
        }


@dataclass(frozen=True)
class PricingResult:
    lines: tuple
    totals: PricingTotals
    price_discount: AppliedDiscount | None = None
    free_shipping: AppliedDiscount | None = None
    coupon: CouponOutcome = field(default_factory=CouponOutcome)
    warnings: tuple = ()

    @property
    def applied_coupon(self) -> AppliedDiscount | None:
        """The customer-entered coupon that ended up applied, if any."""
        for applied in (self.price_discount, self.free_shipping):
            if applied is not None and applied.code_type is CodeType.COUPON:
                return applied
        return None

    def as_dict(self):
        return {
            "items": [lp.as_dict() for lp in self.lines],
            "totals": self.totals.as_dict(),
            "applied_platform": {
                "price_discount": self.price_discount.as_dict() if self.price_discount else None,
                "free_shipping": self.free_shipping.as_dict() if self.free_shipping else None,
            },
            "coupon": self.coupon.as_dict(),
            "warnings": list(self.warnings),
        }
