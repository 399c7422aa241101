"""
Amount helpers.

Money enters the kernel as JSON numbers or strings and leaves it as plain
decimal strings.  Floats are converted through ``str`` so 0.1 stays 0.1.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal | None:
    """Coerce a JSON-ish number to Decimal, or None if it is not a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    try:
        result = Decimal(value.strip())
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def format_amount(value: Decimal | int | str) -> str:
    """Render an amount without exponent or trailing zeros: 65000, 12.5."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")
