"""
Fixed-point money helpers.

All amounts are ``Decimal`` with two decimal places. Floats are converted
through ``str`` so binary representation noise never reaches a balance.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """
    Parse a currency amount into a 2-place Decimal.

    None is treated as zero (nullable numeric columns).

    Raises:
        ValueError: If the value is not a finite number.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Decimal]) -> Decimal:
    """Exact sum of amounts, quantized to cents."""
    return sum((to_decimal(v) for v in values), ZERO)


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal) -> bool:
    """True when |a - b| <= tolerance."""
    return abs(to_decimal(a) - to_decimal(b)) <= tolerance


def exact_cents(value: Decimal) -> Decimal:
    """
    Validate an incoming amount: at most two decimal places, no rounding.

    Raises:
        ValueError: If quantizing to cents would change the value.
    """
    amount = to_decimal(value)
    if amount != value:
        raise ValueError("Amount must have at most 2 decimal places")
    return amount
