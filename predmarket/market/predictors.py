"""
Predictor Stats Tracker

Per-trader prediction history for one market. Every buy counts as a
prediction on the bought outcome:

  - total_predictions / total_staked / per-outcome stake grow
  - the first buy inside the early window (from market creation) is
    recorded as an early prediction
  - the streak grows when the previous prediction was within the streak
    window, otherwise restarts at 1

At settlement every holder of the winning outcome with stake on it earns
an accuracy reward of stake × rate, boosted by the early bonus and a
capped per-step streak bonus.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Optional

from ..constants import (
    ACCURACY_REWARD_RATE_BPS,
    BPS_DENOMINATOR,
    EARLY_PREDICTOR_BONUS_BPS,
    EARLY_PREDICTOR_WINDOW,
    MAX_STREAK_BONUS_BPS,
    STREAK_BONUS_BPS,
    STREAK_WINDOW,
)
from ..logger import get_logger
from .journal import UndoJournal
from .numeric import ZERO, bps_of

logger = get_logger(__name__)


@dataclass
class PredictorStats:
    trader: str
    total_predictions: int = 0
    correct_predictions: int = 0
    total_staked: Decimal = ZERO
    last_prediction_time: Optional[int] = None
    current_streak: int = 0
    highest_streak: int = 0
    early_prediction_time: Optional[int] = None
    stakes: Dict[int, Decimal] = field(default_factory=dict)

    @property
    def accuracy_bps(self) -> int:
        if self.total_predictions == 0:
            return 0
        return self.correct_predictions * BPS_DENOMINATOR // self.total_predictions

    def stake_on(self, outcome: int) -> Decimal:
        return self.stakes.get(outcome, ZERO)

    def to_dict(self) -> dict:
        return {
            "trader": self.trader,
            "total_predictions": self.total_predictions,
            "correct_predictions": self.correct_predictions,
            "accuracy_bps": self.accuracy_bps,
            "total_staked": str(self.total_staked),
            "last_prediction_time": self.last_prediction_time,
            "current_streak": self.current_streak,
            "highest_streak": self.highest_streak,
            "early_prediction_time": self.early_prediction_time,
            "stakes": {str(k): str(v) for k, v in sorted(self.stakes.items())},
        }


class PredictorTracker:

    def __init__(
        self,
        streak_window: int = STREAK_WINDOW,
        early_window: int = EARLY_PREDICTOR_WINDOW,
        reward_rate_bps: int = ACCURACY_REWARD_RATE_BPS,
        early_bonus_bps: int = EARLY_PREDICTOR_BONUS_BPS,
        streak_bonus_bps: int = STREAK_BONUS_BPS,
        max_streak_bonus_bps: int = MAX_STREAK_BONUS_BPS,
    ):
        self.streak_window = streak_window
        self.early_window = early_window
        self.reward_rate_bps = reward_rate_bps
        self.early_bonus_bps = early_bonus_bps
        self.streak_bonus_bps = streak_bonus_bps
        self.max_streak_bonus_bps = max_streak_bonus_bps
        self.stats: Dict[str, PredictorStats] = {}
        self._journal = UndoJournal()

    def checkpoint(self) -> None:
        self._journal.checkpoint()

    def rollback(self) -> None:
        self._journal.rollback()

    def get(self, trader: str) -> Optional[PredictorStats]:
        return self.stats.get(trader)

    def record_buy(
        self,
        trader: str,
        outcome: int,
        amount: Decimal,
        now: int,
        market_created_at: int,
    ) -> PredictorStats:
        self._journal.remember(self.stats, trader)
        stats = self.stats.get(trader)
        if stats is None:
            stats = PredictorStats(trader=trader)
            self.stats[trader] = stats

        stats.total_predictions += 1
        stats.total_staked += amount
        stats.stakes[outcome] = stats.stake_on(outcome) + amount

        if stats.early_prediction_time is None and now < market_created_at + self.early_window:
            stats.early_prediction_time = now

        last = stats.last_prediction_time
        if last is not None and now - last <= self.streak_window:
            stats.current_streak += 1
        else:
            stats.current_streak = 1
        stats.highest_streak = max(stats.highest_streak, stats.current_streak)
        stats.last_prediction_time = now
        return stats

    def bonus_bps(self, stats: PredictorStats) -> int:
        streak_bonus = min(stats.current_streak * self.streak_bonus_bps, self.max_streak_bonus_bps)
        early_bonus = self.early_bonus_bps if stats.early_prediction_time is not None else 0
        return early_bonus + streak_bonus

    def reward_for(self, stats: PredictorStats, winning_outcome: int) -> Decimal:
        base = bps_of(stats.stake_on(winning_outcome), self.reward_rate_bps)
        return base + bps_of(base, self.bonus_bps(stats))

    def settle(self, winning_outcome: int, holders: Iterable[str]) -> Dict[str, Decimal]:
        """
        Credit correct predictions and compute accuracy rewards.

        Args:
            winning_outcome: resolved outcome index
            holders: holders of the winning outcome's shares

        Returns:
            trader → reward, for every holder with stake on the winner
        """
        rewards: Dict[str, Decimal] = {}
        for trader in holders:
            stats = self.stats.get(trader)
            if stats is None or stats.stake_on(winning_outcome) <= 0:
                continue
            self._journal.remember(self.stats, trader)
            stats.correct_predictions += 1
            rewards[trader] = self.reward_for(stats, winning_outcome)
        if rewards:
            logger.info(
                "Settled %d correct predictors on outcome %d", len(rewards), winning_outcome,
            )
        return rewards
