"""
Collaborator and Capability Interfaces

External systems a market talks to are reached only through the narrow
Protocols below (structural typing, no inheritance required). Defaults
are provided so a market can run standalone:

  - StaticIncentiveManager: fixed incentive rate, records metric history
  - NullReputationSystem / NullTreasury / NullReferralProgram: no-ops
  - SequentialOutcomeOracle: hands out increasing request ids

The capability Protocols describe the role-specific surfaces a market
exposes to traders, share holders and liquidity providers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, List, Protocol, Tuple, runtime_checkable

from ..constants import DEFAULT_INCENTIVE_RATE_BPS

if TYPE_CHECKING:
    from .state import RequestContext


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------

class IncentiveManager(Protocol):
    def get_liquidity_incentive_rate(self) -> int: ...
    def notify_metric_history(self, volume: Decimal, volatility: Decimal) -> None: ...


class ReputationSystem(Protocol):
    def update_reputation(
        self,
        user: str,
        liquidity_change: Decimal,
        accuracy_change: int,
        participation: int,
    ) -> None: ...


class OutcomeOracle(Protocol):
    def request_outcome(self, market_id: str) -> str: ...


class Treasury(Protocol):
    def record_fee(self, market_id: str, amount: Decimal) -> None: ...


class ReferralProgram(Protocol):
    def record_referral_fee(self, referrer: str, trader: str, amount: Decimal) -> None: ...


# ---------------------------------------------------------------------------
# Default implementations
# ---------------------------------------------------------------------------

class StaticIncentiveManager:
    """Fixed incentive rate; keeps the reported metric history."""

    def __init__(self, rate_bps: int = DEFAULT_INCENTIVE_RATE_BPS):
        self.rate_bps = rate_bps
        self.history: List[Tuple[Decimal, Decimal]] = []

    def get_liquidity_incentive_rate(self) -> int:
        return self.rate_bps

    def notify_metric_history(self, volume: Decimal, volatility: Decimal) -> None:
        self.history.append((volume, volatility))


class NullReputationSystem:
    def update_reputation(self, user, liquidity_change, accuracy_change, participation) -> None:
        pass


class NullTreasury:
    def record_fee(self, market_id, amount) -> None:
        pass


class NullReferralProgram:
    def record_referral_fee(self, referrer, trader, amount) -> None:
        pass


class SequentialOutcomeOracle:
    """Issues `<market_id>:<n>` request ids; resolution is delivered separately."""

    def __init__(self) -> None:
        self._counter = 0
        self.requests: List[str] = []

    def request_outcome(self, market_id: str) -> str:
        self._counter += 1
        request_id = f"{market_id}:{self._counter}"
        self.requests.append(request_id)
        return request_id


@dataclass
class Collaborators:
    """External systems wired into one market."""
    incentives: IncentiveManager = field(default_factory=StaticIncentiveManager)
    reputation: ReputationSystem = field(default_factory=NullReputationSystem)
    oracle: OutcomeOracle = field(default_factory=SequentialOutcomeOracle)
    treasury: Treasury = field(default_factory=NullTreasury)
    referrals: ReferralProgram = field(default_factory=NullReferralProgram)


# ---------------------------------------------------------------------------
# Capabilities exposed by a market
# ---------------------------------------------------------------------------

@runtime_checkable
class TradingCapability(Protocol):
    def trade(self, ctx: "RequestContext", outcome_index: int, amount: Any,
              max_slippage_bps: int, is_buy: bool) -> Any: ...
    def quote_trade(self, ctx: "RequestContext", outcome_index: int, amount: Any,
                    is_buy: bool) -> Any: ...
    def commit_trade(self, ctx: "RequestContext", commitment: Any) -> None: ...
    def reveal_trade(self, ctx: "RequestContext", *args: Any, **kwargs: Any) -> Any: ...
    def get_current_price(self, outcome_index: int) -> Decimal: ...
    def get_twap(self, outcome_index: int, now: int) -> Decimal: ...


@runtime_checkable
class ShareLedgerCapability(Protocol):
    def balance_of(self, outcome_index: int, holder: str) -> Decimal: ...
    def total_supply(self, outcome_index: int) -> Decimal: ...
    def claim_winnings(self, ctx: "RequestContext") -> Decimal: ...


@runtime_checkable
class LiquidityProviderCapability(Protocol):
    def add_liquidity(self, ctx: "RequestContext", amount: Any) -> Any: ...
    def remove_liquidity(self, ctx: "RequestContext", shares: Any) -> Any: ...
    def claim_rewards(self, ctx: "RequestContext") -> Decimal: ...
    def lp_position(self, provider: str) -> Any: ...
