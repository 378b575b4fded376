"""
Money and rate helpers.

Amounts are carried as Decimal and rounded half-up to cents, the way
payer remittances report them.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[Decimal, int, float, str]

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Number | None) -> Decimal:
    """Convert a numeric value to Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() avoids binary float artifacts (0.1 -> 0.1000000000000000055...)
    return Decimal(str(value))


def round_money(value: Number | None) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def percentage(numerator: Number, denominator: Number) -> Decimal:
    """numerator / denominator x 100, rounded to two decimals (0 when denominator is 0)."""
    denom = to_decimal(denominator)
    if denom == 0:
        return ZERO.quantize(CENTS)
    return (to_decimal(numerator) / denom * 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def amounts_match(a: Number | None, b: Number | None, tolerance: Number = CENTS) -> bool:
    """True when two amounts differ by strictly less than the tolerance."""
    return abs(to_decimal(a) - to_decimal(b)) < to_decimal(tolerance)


def round_int(value: Number) -> int:
    """Round to the nearest whole number, half-up."""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
