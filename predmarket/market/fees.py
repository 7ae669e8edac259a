"""
Dynamic Fee Model

Volatility-responsive trading fee:

  - cumulative volatility (bp) decays linearly to zero over the volatility
    window since the last trade, and resets outright once the window has passed
  - fee = base + volatility × (max − base) / 10000, clamped to max
  - every executed trade adds its price move (bp) to the cumulative volatility
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from ..constants import BASE_FEE_BPS, MAX_FEE_BPS, VOLATILITY_WINDOW
from .numeric import BPS, ZERO, bps_of, q


@dataclass
class DynamicFeeModel:
    base_fee_bps: int = BASE_FEE_BPS
    max_fee_bps: int = MAX_FEE_BPS
    volatility_window: int = VOLATILITY_WINDOW
    cumulative_volatility: Decimal = ZERO
    last_trade_time: Optional[int] = None

    def decayed_volatility(self, now: int) -> Decimal:
        if self.last_trade_time is None:
            return self.cumulative_volatility
        elapsed = max(0, now - self.last_trade_time)
        if elapsed > self.volatility_window:
            return ZERO
        remaining = Decimal(self.volatility_window - elapsed) / Decimal(self.volatility_window)
        return q(self.cumulative_volatility * remaining)

    def fee_bps(self, now: int) -> Decimal:
        """Fee rate (bp) a trade executed at `now` would pay."""
        volatility = self.decayed_volatility(now)
        spread = Decimal(self.max_fee_bps - self.base_fee_bps)
        fee = Decimal(self.base_fee_bps) + q(volatility * spread / BPS)
        return min(fee, Decimal(self.max_fee_bps))

    def fee_for(self, amount: Decimal, now: int) -> Tuple[Decimal, Decimal]:
        """Returns (fee_bps, fee_amount) for a trade of `amount` at `now`."""
        rate = self.fee_bps(now)
        return rate, bps_of(amount, rate)

    def on_trade(self, now: int, price_move_bps: int) -> None:
        """Commit a trade: decay, then accumulate its price move."""
        self.cumulative_volatility = self.decayed_volatility(now) + Decimal(price_move_bps)
        self.last_trade_time = now
