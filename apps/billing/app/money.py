from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

_CENT = Decimal("0.01")


def to_cents(value: Any) -> Optional[int]:
    """
    Parse an amount (int, float, Decimal or numeric text) into integer cents,
    rounding half-up. Returns None for anything that is not a finite number.
    Floats go through their shortest repr so 0.1 becomes 10 cents.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = repr(value)
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not d.is_finite():
            return None
        return int(d.quantize(_CENT, rounding=ROUND_HALF_UP) * 100)
    except (InvalidOperation, ValueError):
        return None


def cents_to_amount(cents: int) -> float:
    """Display amount for JSON responses; arithmetic stays in cents."""
    return float(Decimal(int(cents)) / 100)
