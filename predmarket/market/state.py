"""
Market State

Everything a market mutates lives in one MarketState. Before an operation
runs, take_snapshot copies the fixed-size parts and checkpoints the growing
books; restore_snapshot undoes the operation if anything fails. Also defines the
request context the host supplies on every call, caller roles, operation
events and result records.
"""

from __future__ import annotations

import copy
import hashlib
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .buffers import PriceImpactBuffer, TWAPObservationLog
from .commit_reveal import CommitRevealBook
from .fees import DynamicFeeModel
from .journal import UndoJournal
from .lifecycle import MarketPhase
from .liquidity import LiquidityBook
from .numeric import ZERO
from .predictors import PredictorTracker
from .shares import OutcomeShareLedger


class Role(Enum):
    OPERATOR = "operator"     # lifecycle transitions, role grants
    ORACLE = "oracle"         # delivers the resolved outcome
    TREASURY = "treasury"     # withdraws accrued protocol fees


@dataclass(frozen=True)
class RequestContext:
    """Caller identity and current time, supplied by the host on every call."""
    caller: str
    timestamp: int
    referrer: Optional[str] = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MarketEvent:
    """Emitted on every successful mutating operation."""
    kind: str
    actor: str
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.kind,
            "actor": self.actor,
            "timestamp": self.timestamp,
            **{k: (str(v) if isinstance(v, Decimal) else v) for k, v in self.data.items()},
        }


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TradeQuote:
    """Read-only pricing of a prospective trade."""
    outcome_index: int
    is_buy: bool
    amount_in: Decimal
    fee_bps: Decimal
    fee: Decimal
    amount_out: Decimal
    withheld: Decimal
    slippage_bps: int
    price_impact_bps: int
    rolling_impact_bps: Decimal
    price_before: Decimal
    price_after: Decimal


@dataclass(frozen=True)
class TradeResult:
    """An executed trade. Buys pay collateral for shares, sells the reverse."""
    trader: str
    outcome_index: int
    is_buy: bool
    amount_in: Decimal
    fee_bps: Decimal
    fee: Decimal
    amount_out: Decimal
    withheld: Decimal
    slippage_bps: int
    price_impact_bps: int
    price_before: Decimal
    price_after: Decimal
    protocol_fee: Decimal
    referral_fee: Decimal


@dataclass(frozen=True)
class SettlementSnapshot:
    """Redemption terms fixed when the winner is delivered."""
    winning_outcome: int
    settled_at: int
    pot: Decimal                    # pool net of unskimmed protocol fees
    winning_supply: Decimal
    redemption_rate: Decimal        # collateral per winning share, ≤ 1
    lp_residual: Decimal            # pot left after every winning share redeems
    total_lp_shares: Decimal


# ---------------------------------------------------------------------------
# Market state
# ---------------------------------------------------------------------------

@dataclass
class MarketState:
    id: str
    name: str
    outcomes: List[str]
    created_at: int
    end_time: int
    phase: MarketPhase
    fee: DynamicFeeModel
    shares: OutcomeShareLedger
    liquidity: LiquidityBook
    predictors: PredictorTracker
    commitments: CommitRevealBook
    impact_buffers: List[PriceImpactBuffer]
    twap_logs: List[TWAPObservationLog]
    pool_balance: Decimal = ZERO
    reserves: List[Decimal] = field(default_factory=list)
    protocol_fees: Decimal = ZERO
    total_volume: Decimal = ZERO
    winning_outcome: Optional[int] = None
    settlement: Optional[SettlementSnapshot] = None
    pending_request_id: Optional[str] = None
    fulfilled_requests: Set[str] = field(default_factory=set)
    accuracy_rewards: Dict[str, Decimal] = field(default_factory=dict)
    roles: Dict[Role, Set[str]] = field(default_factory=lambda: {r: set() for r in Role})
    events: List[MarketEvent] = field(default_factory=list)
    journal: UndoJournal = field(default_factory=UndoJournal, compare=False, repr=False)

    @property
    def outcome_count(self) -> int:
        return len(self.outcomes)

    @property
    def lp_pool(self) -> Decimal:
        """Pool balance owned by liquidity providers."""
        return self.pool_balance - self.protocol_fees

    def compute_root(self) -> str:
        """
        Deterministic hash of the market state.

        Two replicas that applied the same operations in the same order
        produce the same root.

        Returns:
            64-char hex string (blake2b-256)
        """
        hasher = hashlib.blake2b(digest_size=32)
        hasher.update(
            (f"{self.id}:{self.phase.name}:{self.pool_balance}:{self.protocol_fees}:"
             f"{self.total_volume}:{self.winning_outcome}").encode()
        )

        for i, reserve in enumerate(self.reserves):
            holders = self.shares.holders(i)
            outcome_hash = hashlib.blake2b(
                (f"{i}:{reserve}:{self.shares.total_supply(i)}:"
                 + ",".join(f"{h}={self.shares.balance_of(i, h)}" for h in holders)).encode(),
                digest_size=16,
            ).digest()
            hasher.update(outcome_hash)

        for provider in sorted(self.liquidity.positions):
            p = self.liquidity.positions[provider]
            hasher.update(
                f"{provider}:{p.liquidity}:{p.shares}:{p.last_update}:{p.unclaimed_reward}".encode()
            )

        fee = self.fee
        hasher.update(f"{fee.cumulative_volatility}:{fee.last_trade_time}".encode())
        hasher.update(len(self.events).to_bytes(8, "big"))
        return hasher.hexdigest()

    # -- Snapshot / restore (for revert) ------------------------------------

    def _books(self) -> tuple:
        return (self.shares, self.liquidity, self.predictors, self.commitments, self.journal)

    def take_snapshot(self) -> Dict[str, Any]:
        """
        Capture what an operation may change, at a cost independent of the
        market's history. Keyed books only remember entries as they are touched.
        """
        for book in self._books():
            book.checkpoint()
        return {
            "phase": self.phase,
            "pool_balance": self.pool_balance,
            "reserves": list(self.reserves),
            "protocol_fees": self.protocol_fees,
            "total_volume": self.total_volume,
            "winning_outcome": self.winning_outcome,
            "settlement": self.settlement,
            "pending_request_id": self.pending_request_id,
            "fulfilled_requests": set(self.fulfilled_requests),
            "roles": {role: set(accounts) for role, accounts in self.roles.items()},
            "fee": copy.deepcopy(self.fee),
            "impact_buffers": copy.deepcopy(self.impact_buffers),
            "twap_logs": copy.deepcopy(self.twap_logs),
            "event_count": len(self.events),
        }

    def restore_snapshot(self, snapshot: Dict[str, Any]) -> None:
        for book in self._books():
            book.rollback()
        self.phase = snapshot["phase"]
        self.pool_balance = snapshot["pool_balance"]
        self.reserves = snapshot["reserves"]
        self.protocol_fees = snapshot["protocol_fees"]
        self.total_volume = snapshot["total_volume"]
        self.winning_outcome = snapshot["winning_outcome"]
        self.settlement = snapshot["settlement"]
        self.pending_request_id = snapshot["pending_request_id"]
        self.fulfilled_requests = snapshot["fulfilled_requests"]
        self.roles = snapshot["roles"]
        self.fee = snapshot["fee"]
        self.impact_buffers = snapshot["impact_buffers"]
        self.twap_logs = snapshot["twap_logs"]
        del self.events[snapshot["event_count"]:]
