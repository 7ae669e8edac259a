"""
Pricing Curve Engine

Constant-product pricing for a single outcome against the market pool,
with a bounded curve adjustment:

  - k = input_reserve × output_reserve
  - new_input = input_reserve + amount_after_fee; new_output = k / new_input
  - outcome price = pool / (pool + outcome_reserve)
  - adjusted price = raw + 4·f·(raw − ½)³, clamped to [MIN_PRICE, MAX_PRICE]
  - output is recomputed against the adjusted price and never exceeds the
    constant-product output or the available output reserve

On a buy the pool is the input reserve (collateral in, shares out); on a
sell the outcome reserve is the input reserve (shares in, collateral out).
The adjustment grows with the cube of the distance from the midpoint, so
trades that push a price toward 0 or 1 are dampened near the extremes while
trades around the midpoint are practically unaffected.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..constants import CURVE_ADJUSTMENT_BPS, MAX_PRICE, MID_PRICE, MIN_PRICE
from ..exceptions import MarketArithmeticError, ValidationError
from .numeric import BPS, ZERO, clamp, q, q_up


def outcome_price(pool_balance: Decimal, reserve: Decimal) -> Decimal:
    """Spot price of an outcome: pool / (pool + reserve)."""
    total = pool_balance + reserve
    if total <= 0:
        raise MarketArithmeticError("Price undefined: pool and reserve are empty")
    return q(pool_balance / total)


@dataclass(frozen=True)
class CurveQuote:
    """Result of pricing one trade against a reserve pair."""
    input_reserve: Decimal
    output_reserve: Decimal
    amount_in: Decimal          # input after fee
    is_buy: bool
    cpmm_output: Decimal        # pure constant-product output
    raw_price: Decimal
    adjusted_price: Decimal
    output: Decimal             # output after the curve adjustment

    @property
    def k(self) -> Decimal:
        return self.input_reserve * self.output_reserve

    @property
    def expected_price(self) -> Decimal:
        """Pre-trade input per unit of output."""
        return self.input_reserve / self.output_reserve

    @property
    def execution_price(self) -> Decimal:
        if self.output <= 0:
            return ZERO
        return self.amount_in / self.output


class PricingCurve:
    """Constant-product curve with a bounded price adjustment."""

    def __init__(
        self,
        adjustment_bps: int = CURVE_ADJUSTMENT_BPS,
        min_price: Decimal = MIN_PRICE,
        max_price: Decimal = MAX_PRICE,
    ):
        self.adjustment = Decimal(adjustment_bps) / BPS
        self.min_price = min_price
        self.max_price = max_price

    def adjust_price(self, raw_price: Decimal) -> Decimal:
        """Push `raw_price` away from the midpoint, then clamp."""
        deviation = raw_price - MID_PRICE
        adjusted = raw_price + 4 * self.adjustment * deviation ** 3
        return clamp(q(adjusted), self.min_price, self.max_price)

    def quote(
        self,
        input_reserve: Decimal,
        output_reserve: Decimal,
        amount_after_fee: Decimal,
        is_buy: bool,
    ) -> CurveQuote:
        """
        Price a trade without mutating anything.

        Raises:
            ValidationError: non-positive input amount
            MarketArithmeticError: empty reserves
        """
        if amount_after_fee <= 0:
            raise ValidationError("Trade amount must be positive")
        if input_reserve <= 0 or output_reserve <= 0:
            raise MarketArithmeticError("Cannot price against an empty reserve")

        k = input_reserve * output_reserve
        new_input = input_reserve + amount_after_fee
        # Round the post-trade output reserve up so k never shrinks
        new_output = q_up(k / new_input)
        cpmm_output = max(ZERO, output_reserve - new_output)

        if is_buy:
            raw = q(new_input / (new_input + new_output))
        else:
            raw = q(new_output / (new_input + new_output))
        adjusted = self.adjust_price(raw)

        if cpmm_output == 0 or raw <= 0:
            output = ZERO
        elif is_buy:
            output = q(cpmm_output * raw / adjusted)
        else:
            output = q(cpmm_output * adjusted / raw)
        output = max(ZERO, min(output, cpmm_output, output_reserve))

        return CurveQuote(
            input_reserve=input_reserve,
            output_reserve=output_reserve,
            amount_in=amount_after_fee,
            is_buy=is_buy,
            cpmm_output=cpmm_output,
            raw_price=raw,
            adjusted_price=adjusted,
            output=output,
        )
