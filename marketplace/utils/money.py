# marketplace/utils/money.py

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

Money = Decimal
ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x: Money) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(x):
    """Finite, non-negative amount rounded to cents, or None."""
    if x is None or isinstance(x, bool):
        return None
    try:
        value = D(x) if not isinstance(x, str) else Decimal(x.strip())
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not value.is_finite() or value < 0:
        return None
    return round_money(value)


def clamp(x: Money, low: Money, high: Money) -> Money:
    return max(low, min(high, x))


def to_float_money(x) -> float:
    return float(round_money(x))
