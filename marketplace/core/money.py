from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Any) -> Decimal:
    """Coerce to a two-place Decimal; floats go through str() to avoid binary noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Invalid monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_money(amount: Decimal, upper: Decimal) -> Decimal:
    if amount < ZERO:
        return ZERO
    if amount > upper:
        return upper
    return amount


def money_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(to_money(value))
