"""
Trade Guard

Circuit-breaker checks applied to every trade before any state changes:
  - Slippage: |execution − expected| / expected against the caller's ceiling,
    expected = input_reserve / output_reserve
  - Price impact: output lost to the curve adjustment relative to the pure
    constant-product output, against a global ceiling
  - Rolling price impact: the outcome's recent average impact (including
    this trade) must stay under the same ceiling, which catches sequences
    of individually acceptable trades
  - MEV withholding: a fraction of the output proportional to the deviation
    of the post-trade price from the time-weighted reference price is
    withheld (capped) and credited back to the pool
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..constants import MAX_MEV_WITHHOLD_BPS, MAX_PRICE_IMPACT_BPS, MEV_WITHHOLD_RATE_BPS
from ..exceptions import ValidationError
from ..logger import get_logger
from .buffers import PriceImpactBuffer
from .curve import CurveQuote
from .numeric import ZERO, bps_of, ratio_bps

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuardReport:
    """Measurements taken for one trade."""
    slippage_bps: int
    price_impact_bps: int
    rolling_impact_bps: Decimal


@dataclass(frozen=True)
class MevAdjustment:
    """Output withheld from a trade for deviating from the reference price."""
    deviation_bps: int
    withheld_bps: int
    withheld: Decimal
    output_to_trader: Decimal


class TradeGuard:
    """Stateless checks; per-outcome history lives in the caller's buffers."""

    def __init__(
        self,
        max_price_impact_bps: int = MAX_PRICE_IMPACT_BPS,
        mev_withhold_rate_bps: int = MEV_WITHHOLD_RATE_BPS,
        max_mev_withhold_bps: int = MAX_MEV_WITHHOLD_BPS,
    ):
        self.max_price_impact_bps = max_price_impact_bps
        self.mev_withhold_rate_bps = mev_withhold_rate_bps
        self.max_mev_withhold_bps = max_mev_withhold_bps

    # -- Measurements -------------------------------------------------------

    @staticmethod
    def slippage_bps(quote: CurveQuote) -> int:
        expected = quote.expected_price
        return ratio_bps(abs(quote.execution_price - expected), expected)

    @staticmethod
    def price_impact_bps(quote: CurveQuote) -> int:
        ideal = quote.cpmm_output
        return ratio_bps(max(ZERO, ideal - quote.output), ideal)

    def evaluate(self, quote: CurveQuote, buffer: PriceImpactBuffer) -> GuardReport:
        impact = self.price_impact_bps(quote)
        return GuardReport(
            slippage_bps=self.slippage_bps(quote),
            price_impact_bps=impact,
            rolling_impact_bps=buffer.average_with(Decimal(impact)),
        )

    # -- Enforcement --------------------------------------------------------

    def check(
        self,
        quote: CurveQuote,
        max_slippage_bps: int,
        buffer: PriceImpactBuffer,
    ) -> GuardReport:
        """
        Run every check for a trade.

        Raises:
            ValidationError: zero output or any ceiling exceeded
        """
        if quote.output <= 0:
            raise ValidationError("Trade produces no output")

        report = self.evaluate(quote, buffer)
        if report.slippage_bps > max_slippage_bps:
            raise ValidationError(
                f"Slippage exceeded: {report.slippage_bps} bp > {max_slippage_bps} bp"
            )
        if report.price_impact_bps > self.max_price_impact_bps:
            raise ValidationError(
                f"Price impact exceeded: {report.price_impact_bps} bp > {self.max_price_impact_bps} bp"
            )
        if report.rolling_impact_bps > self.max_price_impact_bps:
            raise ValidationError(
                f"Rolling price impact exceeded: {report.rolling_impact_bps} bp "
                f"> {self.max_price_impact_bps} bp"
            )
        return report

    def mev_withholding(
        self,
        outcome_index: int,
        output_amount: Decimal,
        reference_price: Decimal,
        execution_price: Decimal,
    ) -> MevAdjustment:
        """
        Portion of `output_amount` withheld for deviating from `reference_price`.

        Args:
            outcome_index: outcome being traded
            output_amount: output the trade would otherwise deliver
            reference_price: time-weighted price before the trade
            execution_price: outcome price after the trade
        """
        deviation = ratio_bps(abs(execution_price - reference_price), reference_price)
        withheld_bps = min(deviation * self.mev_withhold_rate_bps // 10_000, self.max_mev_withhold_bps)
        withheld = bps_of(output_amount, withheld_bps)
        if withheld > 0:
            logger.debug(
                "Outcome %d: withholding %s (%d bp) for %d bp deviation from reference",
                outcome_index, withheld, withheld_bps, deviation,
            )
        return MevAdjustment(
            deviation_bps=deviation,
            withheld_bps=withheld_bps,
            withheld=withheld,
            output_to_trader=output_amount - withheld,
        )
