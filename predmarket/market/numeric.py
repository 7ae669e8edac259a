"""
Fixed-point helpers.

All amounts and prices are Decimals quantized to 18 fractional digits
(the 1e18 fixed-point scale); ratios are expressed in basis points.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_DOWN, ROUND_UP, getcontext
from typing import Union

from ..constants import BPS_DENOMINATOR, PRICE_DECIMALS

# Enough headroom for products of 1e18-scaled amounts
getcontext().prec = 60

ZERO = Decimal("0")
ONE = Decimal("1")
BPS = Decimal(BPS_DENOMINATOR)
QUANTUM = Decimal(1).scaleb(-PRICE_DECIMALS)

Number = Union[Decimal, int, str]


def to_decimal(value: Number) -> Decimal:
    """Convert ints, strings and Decimals (never floats) to Decimal."""
    if isinstance(value, float):
        raise TypeError("floats are not accepted for amounts; pass str or Decimal")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def q(value: Decimal) -> Decimal:
    """Quantize to the 1e-18 grid, rounding toward zero."""
    return value.quantize(QUANTUM, rounding=ROUND_DOWN)


def q_up(value: Decimal) -> Decimal:
    """Quantize to the 1e-18 grid, rounding away from zero."""
    return value.quantize(QUANTUM, rounding=ROUND_UP)


def bps_of(amount: Decimal, bps: Number) -> Decimal:
    """`amount * bps / 10000` on the fixed-point grid."""
    return q(amount * to_decimal(bps) / BPS)


def ratio_bps(numerator: Decimal, denominator: Decimal) -> int:
    """`numerator / denominator` in whole basis points (floored); 0 if denominator is 0."""
    if denominator <= 0:
        return 0
    return int((numerator * BPS / denominator).to_integral_value(rounding=ROUND_DOWN))


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))
