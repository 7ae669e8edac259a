"""
Test suite for market pricing primitives

Covers:
  - Fixed-point helpers
  - Pricing curve (constant product + bounded adjustment)
  - Dynamic fee model
  - Rolling statistics buffers (price-impact ring, TWAP log)
  - Trade guard (slippage, impact, rolling impact, MEV withholding)

Run with:
    pytest tests/test_market_pricing.py -v
"""

from decimal import Decimal

import pytest

from predmarket.exceptions import MarketArithmeticError, ValidationError
from predmarket.market.buffers import PriceImpactBuffer, TWAPObservationLog
from predmarket.market.curve import CurveQuote, PricingCurve, outcome_price
from predmarket.market.fees import DynamicFeeModel
from predmarket.market.guard import TradeGuard
from predmarket.market.numeric import bps_of, q, q_up, ratio_bps, to_decimal

D = Decimal


def _quote(cpmm_output, output, amount_in=D("100"), reserves=(D("1000"), D("1000"))):
    return CurveQuote(
        input_reserve=reserves[0],
        output_reserve=reserves[1],
        amount_in=amount_in,
        is_buy=True,
        cpmm_output=cpmm_output,
        raw_price=D("0.5"),
        adjusted_price=D("0.5"),
        output=output,
    )


# ============================================================================
#  FIXED POINT
# ============================================================================

class TestNumeric:

    def test_quantize_rounds_down_and_up(self):
        x = D(1) / D(3)
        assert q(x) == D("0.333333333333333333")
        assert q_up(x) == D("0.333333333333333334")

    def test_bps_of(self):
        assert bps_of(D("100"), 30) == D("0.3")
        assert bps_of(D("1"), 0) == D("0")

    def test_ratio_bps_floors(self):
        assert ratio_bps(D("1"), D("3")) == 3333
        assert ratio_bps(D("5"), D("0")) == 0

    def test_floats_rejected(self):
        with pytest.raises(TypeError):
            to_decimal(0.1)
        assert to_decimal("0.1") == D("0.1")
        assert to_decimal(7) == D("7")


# ============================================================================
#  PRICING CURVE
# ============================================================================

class TestPricingCurve:

    def test_outcome_price(self):
        assert outcome_price(D("1000"), D("1000")) == D("0.5")
        assert outcome_price(D("3000"), D("1000")) == D("0.75")

    def test_outcome_price_empty(self):
        with pytest.raises(MarketArithmeticError):
            outcome_price(D("0"), D("0"))

    def test_adjustment_neutral_at_midpoint(self):
        assert PricingCurve().adjust_price(D("0.5")) == D("0.5")

    def test_adjustment_pushes_away_from_midpoint(self):
        curve = PricingCurve()
        # 0.9 + 4 * 0.05 * 0.4^3
        assert curve.adjust_price(D("0.9")) == D("0.9128")
        assert curve.adjust_price(D("0.1")) == D("0.0872")

    def test_adjustment_clamped(self):
        curve = PricingCurve()
        assert curve.adjust_price(D("0.9999")) == D("0.999")
        assert curve.adjust_price(D("0.0001")) == D("0.001")

    def test_buy_output_capped_by_cpmm(self):
        quote = PricingCurve().quote(D("1000"), D("1000"), D("100"), is_buy=True)
        assert D("0") < quote.output <= quote.cpmm_output
        assert quote.adjusted_price > quote.raw_price > D("0.5")

    def test_buy_preserves_k(self):
        quote = PricingCurve().quote(D("1000"), D("1000"), D("100"), is_buy=True)
        assert (D("1000") + D("100")) * (D("1000") - quote.output) >= D("1000") * D("1000")

    def test_sell_preserves_k(self):
        quote = PricingCurve().quote(D("800"), D("1200"), D("50"), is_buy=False)
        assert D("0") < quote.output <= quote.cpmm_output
        assert (D("800") + D("50")) * (D("1200") - quote.output) >= D("800") * D("1200")

    def test_sell_price_falls(self):
        quote = PricingCurve().quote(D("1000"), D("1000"), D("100"), is_buy=False)
        assert quote.raw_price < D("0.5")
        assert quote.adjusted_price < quote.raw_price

    def test_zero_adjustment_is_pure_cpmm(self):
        quote = PricingCurve(adjustment_bps=0).quote(D("1000"), D("1000"), D("100"), is_buy=True)
        assert quote.output == quote.cpmm_output

    def test_rejects_zero_amount(self):
        with pytest.raises(ValidationError):
            PricingCurve().quote(D("1000"), D("1000"), D("0"), is_buy=True)

    def test_rejects_empty_reserve(self):
        with pytest.raises(MarketArithmeticError):
            PricingCurve().quote(D("1000"), D("0"), D("10"), is_buy=True)

    def test_expected_and_execution_price(self):
        quote = PricingCurve().quote(D("1000"), D("1000"), D("100"), is_buy=True)
        assert quote.expected_price == D("1")
        assert quote.execution_price > quote.expected_price


# ============================================================================
#  DYNAMIC FEE
# ============================================================================

class TestDynamicFee:

    def test_base_fee_without_volatility(self):
        model = DynamicFeeModel()
        assert model.fee_bps(0) == D("30")
        assert model.fee_for(D("100"), 0) == (D("30"), D("0.3"))

    def test_volatility_raises_fee(self):
        model = DynamicFeeModel()
        model.on_trade(0, 1000)
        # 30 + 1000 * (100 - 30) / 10000
        assert model.fee_bps(0) == D("37")

    def test_linear_decay(self):
        model = DynamicFeeModel()
        model.on_trade(0, 1000)
        assert model.decayed_volatility(1800) == D("500")
        assert model.fee_bps(1800) == D("33.5")

    def test_reset_after_window(self):
        model = DynamicFeeModel()
        model.on_trade(0, 1000)
        assert model.fee_bps(3600) == D("30")
        assert model.decayed_volatility(3601) == D("0")

    def test_fee_clamped_to_max(self):
        model = DynamicFeeModel()
        model.on_trade(0, 20000)
        assert model.fee_bps(0) == D("100")

    def test_trade_accumulates_decayed_volatility(self):
        model = DynamicFeeModel()
        model.on_trade(0, 1000)
        model.on_trade(1800, 200)
        assert model.cumulative_volatility == D("700")
        assert model.last_trade_time == 1800

    def test_rate_computed_at_query_time(self):
        model = DynamicFeeModel()
        model.on_trade(0, 1000)
        # 30 + 750 * 70 / 10000
        assert model.fee_bps(900) == D("35.25")
        assert model.fee_bps(0) == D("37")


# ============================================================================
#  ROLLING STATISTICS
# ============================================================================

class TestPriceImpactBuffer:

    def test_eleven_inserts_keep_latest_ten(self):
        buf = PriceImpactBuffer(capacity=10)
        for v in range(1, 12):
            buf.record(D(v))
        assert len(buf) == 10
        assert buf.values() == [D(v) for v in range(2, 12)]
        assert buf.average() == D("6.5")

    def test_average_with_candidate(self):
        buf = PriceImpactBuffer(capacity=10)
        for v in range(1, 11):
            buf.record(D(v))
        # candidate evicts the oldest (1)
        assert buf.average_with(D("21")) == D("7.5")
        assert len(buf) == 10

    def test_average_with_on_partial_buffer(self):
        buf = PriceImpactBuffer(capacity=10)
        buf.record(D("100"))
        assert buf.average_with(D("200")) == D("150")

    def test_empty_average(self):
        assert PriceImpactBuffer().average() == D("0")

    def test_invalid_capacity(self):
        with pytest.raises(ValidationError):
            PriceImpactBuffer(capacity=0)


class TestTWAPObservationLog:

    def test_worked_example(self):
        log = TWAPObservationLog()
        t0 = 1_000
        log.record(D("0.4"), t0)
        log.record(D("0.6"), t0 + 60)
        assert log.twap(t0 + 120) == (D("0.4") * 60 + D("0.6") * 60) / 120

    def test_empty_log_raises(self):
        with pytest.raises(MarketArithmeticError):
            TWAPObservationLog().twap(100)

    def test_zero_weight_returns_latest(self):
        log = TWAPObservationLog()
        log.record(D("0.42"), 100)
        assert log.twap(100) == D("0.42")

    def test_same_timestamp_overwrites(self):
        log = TWAPObservationLog()
        log.record(D("0.4"), 100)
        log.record(D("0.7"), 100)
        assert len(log) == 1
        assert log.latest.price == D("0.7")

    def test_timestamp_must_not_go_backwards(self):
        log = TWAPObservationLog()
        log.record(D("0.4"), 100)
        with pytest.raises(ValidationError):
            log.record(D("0.5"), 99)

    def test_rejects_non_positive_price(self):
        with pytest.raises(ValidationError):
            TWAPObservationLog().record(D("0"), 1)

    def test_evicts_oldest(self):
        log = TWAPObservationLog(capacity=3)
        for i, p in enumerate(["0.1", "0.2", "0.3", "0.4"]):
            log.record(D(p), i * 10)
        obs = log.observations()
        assert [o.price for o in obs] == [D("0.2"), D("0.3"), D("0.4")]
        assert obs[0].timestamp == 10


# ============================================================================
#  TRADE GUARD
# ============================================================================

class TestTradeGuard:

    def test_slippage_measurement(self):
        quote = PricingCurve().quote(D("1000"), D("1000"), D("99.7"), is_buy=True)
        slippage = TradeGuard.slippage_bps(quote)
        assert 990 <= slippage <= 1000

    def test_slippage_boundary(self):
        guard = TradeGuard()
        quote = PricingCurve().quote(D("1000"), D("1000"), D("50"), is_buy=True)
        slippage = TradeGuard.slippage_bps(quote)
        guard.check(quote, slippage, PriceImpactBuffer())
        with pytest.raises(ValidationError, match="Slippage"):
            guard.check(quote, slippage - 1, PriceImpactBuffer())

    def test_price_impact_ceiling(self):
        quote = _quote(cpmm_output=D("100"), output=D("90"))
        assert TradeGuard.price_impact_bps(quote) == 1000
        with pytest.raises(ValidationError, match="Price impact"):
            TradeGuard().check(quote, 10_000, PriceImpactBuffer())

    def test_rolling_impact_ceiling(self):
        buf = PriceImpactBuffer()
        for _ in range(5):
            buf.record(D("900"))
        quote = _quote(cpmm_output=D("100"), output=D("96"))
        assert TradeGuard.price_impact_bps(quote) == 400
        with pytest.raises(ValidationError, match="Rolling"):
            TradeGuard().check(quote, 10_000, buf)

    def test_acceptable_trade_reports(self):
        quote = _quote(cpmm_output=D("100"), output=D("99"))
        report = TradeGuard().check(quote, 10_000, PriceImpactBuffer())
        assert report.price_impact_bps == 100
        assert report.rolling_impact_bps == D("100")

    def test_zero_output_rejected(self):
        with pytest.raises(ValidationError, match="no output"):
            TradeGuard().check(_quote(cpmm_output=D("0"), output=D("0")), 10_000, PriceImpactBuffer())

    def test_mev_withholding_proportional(self):
        adj = TradeGuard().mev_withholding(0, D("100"), D("0.5"), D("0.51"))
        assert adj.deviation_bps == 200
        assert adj.withheld_bps == 20
        assert adj.withheld == D("0.2")
        assert adj.output_to_trader == D("99.8")

    def test_mev_withholding_capped(self):
        adj = TradeGuard().mev_withholding(1, D("100"), D("0.5"), D("0.9"))
        assert adj.withheld_bps == 100
        assert adj.withheld == D("1")

    def test_no_withholding_at_reference(self):
        adj = TradeGuard().mev_withholding(0, D("100"), D("0.5"), D("0.5"))
        assert adj.withheld == D("0")
        assert adj.output_to_trader == D("100")
