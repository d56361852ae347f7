from decimal import Decimal, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 0.1 don't drag binary noise along.
    return Decimal(str(value))


def quantize(value: Any) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Any) -> int:
    return int((quantize(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def format_usd(value: Any) -> str:
    return f"${quantize(value):,.2f}"
