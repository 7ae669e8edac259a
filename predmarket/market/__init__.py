"""
Prediction Market Core

Outcome-share trading against a shared pool, liquidity accounting,
predictor rewards and the market lifecycle.
"""

from .buffers import Observation, PriceImpactBuffer, TWAPObservationLog
from .commit_reveal import CommitRecord, CommitRevealBook, TradeIntent, commitment_hash
from .curve import CurveQuote, PricingCurve, outcome_price
from .engine import PredictionMarket
from .fees import DynamicFeeModel
from .guard import GuardReport, MevAdjustment, TradeGuard
from .interfaces import (
    Collaborators,
    IncentiveManager,
    LiquidityProviderCapability,
    NullReferralProgram,
    NullReputationSystem,
    NullTreasury,
    OutcomeOracle,
    ReferralProgram,
    ReputationSystem,
    SequentialOutcomeOracle,
    ShareLedgerCapability,
    StaticIncentiveManager,
    TradingCapability,
    Treasury,
)
from .lifecycle import MarketPhase
from .liquidity import (
    LiquidityBook,
    LiquidityDeposit,
    LiquidityTier,
    LiquidityWithdrawal,
    LPPosition,
    impermanent_loss,
)
from .manager import MarketManager
from .predictors import PredictorStats, PredictorTracker
from .shares import OutcomeShareLedger
from .state import (
    MarketEvent,
    MarketState,
    RequestContext,
    Role,
    SettlementSnapshot,
    TradeQuote,
    TradeResult,
)

__all__ = [
    # Engine
    "PredictionMarket",
    "MarketManager",
    "MarketState",
    "MarketPhase",
    "RequestContext",
    "Role",
    "MarketEvent",
    "TradeQuote",
    "TradeResult",
    "SettlementSnapshot",
    # Pricing
    "PricingCurve",
    "CurveQuote",
    "outcome_price",
    "DynamicFeeModel",
    "TradeGuard",
    "GuardReport",
    "MevAdjustment",
    "PriceImpactBuffer",
    "TWAPObservationLog",
    "Observation",
    # Commit-reveal
    "CommitRevealBook",
    "CommitRecord",
    "TradeIntent",
    "commitment_hash",
    # Liquidity / predictors / shares
    "LiquidityBook",
    "LiquidityTier",
    "LiquidityDeposit",
    "LiquidityWithdrawal",
    "LPPosition",
    "impermanent_loss",
    "PredictorTracker",
    "PredictorStats",
    "OutcomeShareLedger",
    # Collaborators
    "Collaborators",
    "IncentiveManager",
    "ReputationSystem",
    "OutcomeOracle",
    "Treasury",
    "ReferralProgram",
    "StaticIncentiveManager",
    "NullReputationSystem",
    "NullTreasury",
    "NullReferralProgram",
    "SequentialOutcomeOracle",
    "TradingCapability",
    "ShareLedgerCapability",
    "LiquidityProviderCapability",
]
