# marketplace/errors.py
from flask import jsonify

from .utils.api import api_error


class PricingError(Exception):
    """Business-rule or client-input failure surfaced to the caller."""

    code = "pricing_error"
    status_code = 400
    default_message = "Pricing failed"

    def __init__(self, message=None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def as_api(self):
        return {"code": self.code, **self.details}


class MissingSellerMapping(PricingError):
    code = "missing_seller_mapping"
    status_code = 422
    default_message = "Product missing seller mapping"


class InvalidCouponFormat(PricingError):
    code = "invalid_coupon_format"
    status_code = 400
    default_message = "Invalid coupon code format"


class CouponNotFound(PricingError):
    code = "coupon_not_found"
    status_code = 404
    default_message = "Invalid coupon code"


class CouponNotEligible(PricingError):
    code = "coupon_not_eligible"
    status_code = 409
    default_message = "Coupon is not eligible (min cart / expired / limit reached)"


class PerUserLimitReached(PricingError):
    code = "per_user_limit_reached"
    status_code = 409
    default_message = "Coupon per-user limit reached"


class UnbalancedAllocationInternalError(AssertionError):
    """Prorated shares did not sum to the allocated amount."""


def register_error_handlers(app):
    @app.errorhandler(PricingError)
    def handle_pricing_error(e):
        r = jsonify(api_error(e.message, e.as_api()))
        r.status_code = e.status_code
        return r

    @app.errorhandler(ValueError)
    def handle_value_error(e):
        r = jsonify(api_error(str(e)))
        r.status_code = 422
        return r
