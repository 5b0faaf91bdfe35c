from .pricing_service import compute_pricing
from .coupon_reservation import reserve_coupon, ReservationOutcome
from .order_service import create_order

__all__ = ["compute_pricing", "reserve_coupon", "ReservationOutcome", "create_order"]
