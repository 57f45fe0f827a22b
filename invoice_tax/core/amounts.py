from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

_UNIT = Decimal("1")
# Floats at or above 2**52 carry no fractional part.
_INTEGRAL_FLOAT = float(2**52)


def to_amount(value: Any) -> float:
    """Coerce a stored monetary or rate field to a float.

    Missing, NaN, non-finite and unparseable values all become ``0.0`` so the
    calculations downstream never have to null-check.
    """
    if value is None or isinstance(value, bool):
        return float(value or 0)
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def deduction_fraction(value: Any) -> float:
    """Zero, negative or missing means full deduction; anything above 1 is capped."""
    fraction = to_amount(value)
    if fraction <= 0:
        return 1.0
    return min(1.0, fraction)


def round2(value: float) -> float:
    # The scaling happens in float arithmetic, so 1.005 -> 100.49999999999999 -> 1.0.
    cents = value * 100
    if not math.isfinite(cents):
        return value
    if abs(cents) >= _INTEGRAL_FLOAT:
        return cents / 100
    scaled = Decimal(cents).quantize(_UNIT, rounding=ROUND_HALF_UP)
    return int(scaled) / 100


__all__ = ["deduction_fraction", "round2", "to_amount"]
