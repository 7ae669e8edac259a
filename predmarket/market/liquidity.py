"""
Liquidity Accounting

LP share minting / burning, tiered incentive rewards and vested
impermanent-loss protection.

  - Add: settle the pending reward, grow the pool and every outcome reserve
    proportionally (prices unchanged), snapshot entry prices, recompute the
    tier, mint shares pro rata to the LP-owned pool (1:1 on the first deposit)
  - Remove: release shares/total_shares of the LP-owned pool and of every
    reserve; IL protection = liquidity_removed × IL% × vested fraction,
    capped at a fixed share of the liquidity removed; the unclaimed reward is
    paid out and reset
  - IL% for a price ratio r is 1 − 2√r / (1 + r); the worst outcome counts

Pool and reserve balances are owned by the market; this book owns the
positions and the share supply and returns the balance changes to apply.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from ..constants import (
    IL_PROTECTION_PERIOD,
    LIQUIDITY_TIERS,
    MAX_IL_PROTECTION_BPS,
    SECONDS_PER_YEAR,
)
from ..exceptions import MarketArithmeticError, ValidationError
from ..logger import get_logger
from .journal import UndoJournal
from .numeric import BPS, ONE, ZERO, bps_of, q

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Tiers and IL math
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LiquidityTier:
    min_liquidity: Decimal
    multiplier_bps: int


def build_tiers(table: Sequence[Tuple[Decimal, int]]) -> Tuple[LiquidityTier, ...]:
    tiers = tuple(LiquidityTier(Decimal(m), int(bps)) for m, bps in table)
    if not tiers:
        raise ValidationError("At least one liquidity tier is required")
    return tiers


def tier_for(tiers: Sequence[LiquidityTier], liquidity: Decimal) -> int:
    """Index of the highest tier whose minimum `liquidity` meets."""
    index = 0
    for i, tier in enumerate(tiers):
        if liquidity >= tier.min_liquidity:
            index = i
    return index


def impermanent_loss(price_ratio: Decimal) -> Decimal:
    """
    IL magnitude for a price ratio: 1 − 2√r / (1 + r).

    Zero at r = 1, growing as r moves away from 1 in either direction.
    """
    if price_ratio <= 0:
        raise MarketArithmeticError("Price ratio must be positive")
    return q(ONE - 2 * price_ratio.sqrt() / (ONE + price_ratio))


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class LPPosition:
    """A provider's stake. Never deleted; zeroed on full withdrawal."""
    provider: str
    liquidity: Decimal = ZERO
    shares: Decimal = ZERO
    entry_prices: List[Decimal] = field(default_factory=list)
    last_update: int = 0
    unclaimed_reward: Decimal = ZERO
    tier: int = 0


@dataclass(frozen=True)
class LiquidityDeposit:
    provider: str
    amount: Decimal
    shares_minted: Decimal
    reserve_additions: Tuple[Decimal, ...]
    tier: int
    settled_reward: Decimal


@dataclass(frozen=True)
class LiquidityWithdrawal:
    provider: str
    shares_burned: Decimal
    principal: Decimal
    reserve_releases: Tuple[Decimal, ...]
    liquidity_removed: Decimal
    il_pct: Decimal
    vested_fraction: Decimal
    il_protection: Decimal
    reward: Decimal

    @property
    def payout(self) -> Decimal:
        return self.principal + self.il_protection + self.reward


# ---------------------------------------------------------------------------
# Liquidity book
# ---------------------------------------------------------------------------

class LiquidityBook:
    """LP positions and share supply for one market."""

    def __init__(
        self,
        tiers: Sequence[Tuple[Decimal, int]] = LIQUIDITY_TIERS,
        protection_period: int = IL_PROTECTION_PERIOD,
        max_protection_bps: int = MAX_IL_PROTECTION_BPS,
    ):
        self.tiers = build_tiers(tiers)
        self.protection_period = protection_period
        self.max_protection_bps = max_protection_bps
        self.positions: Dict[str, LPPosition] = {}
        self.total_shares: Decimal = ZERO
        self._journal = UndoJournal()
        self._saved_total_shares: Decimal = ZERO

    def checkpoint(self) -> None:
        self._journal.checkpoint()
        self._saved_total_shares = self.total_shares

    def rollback(self) -> None:
        self._journal.rollback()
        self.total_shares = self._saved_total_shares

    def position(self, provider: str) -> Optional[LPPosition]:
        return self.positions.get(provider)

    def multiplier_bps(self, position: LPPosition) -> int:
        return self.tiers[position.tier].multiplier_bps

    # -- Rewards ------------------------------------------------------------

    def pending_reward(self, position: LPPosition, now: int, rate_bps: int) -> Decimal:
        """Reward accrued since the last update on the prior liquidity."""
        elapsed = max(0, now - position.last_update)
        if elapsed == 0 or position.liquidity <= 0 or rate_bps <= 0:
            return ZERO
        annual = position.liquidity * Decimal(rate_bps) / BPS
        boosted = annual * Decimal(self.multiplier_bps(position)) / BPS
        return q(boosted * elapsed / SECONDS_PER_YEAR)

    def _settle(self, position: LPPosition, now: int, rate_bps: int) -> Decimal:
        reward = self.pending_reward(position, now, rate_bps)
        position.unclaimed_reward += reward
        position.last_update = now
        return reward

    def claim(self, provider: str, now: int, rate_bps: int) -> Decimal:
        """Settle and pay out the unclaimed reward."""
        self._journal.remember(self.positions, provider)
        position = self.positions.get(provider)
        if position is None:
            raise ValidationError(f"No liquidity position for {provider}")
        self._settle(position, now, rate_bps)
        reward = position.unclaimed_reward
        position.unclaimed_reward = ZERO
        return reward

    # -- Add ----------------------------------------------------------------

    def reserve_additions(
        self,
        amount: Decimal,
        lp_pool: Decimal,
        pool_balance: Decimal,
        reserves: Sequence[Decimal],
    ) -> Tuple[Decimal, ...]:
        """Reserve growth for a deposit; the first deposit seeds every reserve with it."""
        if self.total_shares == 0 or lp_pool <= 0:
            return tuple(amount for _ in reserves)
        return tuple(q(r * amount / pool_balance) for r in reserves)

    def add(
        self,
        provider: str,
        amount: Decimal,
        lp_pool: Decimal,
        pool_balance: Decimal,
        reserves: Sequence[Decimal],
        prices: Sequence[Decimal],
        now: int,
        rate_bps: int,
    ) -> LiquidityDeposit:
        """
        Record a deposit.

        Args:
            lp_pool: pool balance owned by LPs (excludes protocol fees)
            pool_balance: full pool balance, used to keep prices unchanged
            reserves: outcome reserves before the deposit
            prices: outcome spot prices (the entry snapshot)
        """
        if amount <= 0:
            raise ValidationError("Liquidity amount must be positive")

        self._journal.remember(self.positions, provider)
        position = self.positions.get(provider)
        if position is None:
            position = LPPosition(provider=provider, last_update=now)
            self.positions[provider] = position
        settled = self._settle(position, now, rate_bps)

        additions = self.reserve_additions(amount, lp_pool, pool_balance, reserves)
        if self.total_shares == 0 or lp_pool <= 0:
            shares = amount
        else:
            shares = q(amount * self.total_shares / lp_pool)
        if shares <= 0:
            raise ValidationError("Deposit too small to mint LP shares")

        position.liquidity += amount
        position.shares += shares
        position.entry_prices = list(prices)
        position.tier = tier_for(self.tiers, position.liquidity)
        self.total_shares += shares

        return LiquidityDeposit(
            provider=provider,
            amount=amount,
            shares_minted=shares,
            reserve_additions=additions,
            tier=position.tier,
            settled_reward=settled,
        )

    # -- Remove -------------------------------------------------------------

    def il_protection(
        self,
        position: LPPosition,
        liquidity_removed: Decimal,
        prices: Sequence[Decimal],
        now: int,
    ) -> Tuple[Decimal, Decimal, Decimal]:
        """Returns (il_pct, vested_fraction, protection) for a withdrawal."""
        il_pct = ZERO
        for entry, current in zip(position.entry_prices, prices):
            if entry > 0 and current > 0:
                il_pct = max(il_pct, impermanent_loss(current / entry))

        elapsed = max(0, now - position.last_update)
        vested = min(ONE, q(Decimal(elapsed) / Decimal(self.protection_period)))
        protection = q(liquidity_removed * il_pct * vested)
        cap = bps_of(liquidity_removed, self.max_protection_bps)
        return il_pct, vested, min(protection, cap)

    def remove(
        self,
        provider: str,
        shares: Decimal,
        lp_pool: Decimal,
        reserves: Sequence[Decimal],
        prices: Sequence[Decimal],
        now: int,
        rate_bps: int,
    ) -> LiquidityWithdrawal:
        """
        Burn `shares` and compute everything released to the provider.

        Raises:
            ValidationError: non-positive share amount or no position
            MarketArithmeticError: more shares than the position holds
        """
        if shares <= 0:
            raise ValidationError("Share amount must be positive")
        position = self.positions.get(provider)
        if position is None:
            raise ValidationError(f"No liquidity position for {provider}")
        if shares > position.shares:
            raise MarketArithmeticError(
                f"Insufficient LP shares: have {position.shares}, burning {shares}"
            )
        self._journal.remember(self.positions, provider)

        fraction = shares / self.total_shares
        principal = q(lp_pool * fraction)
        releases = tuple(q(r * fraction) for r in reserves)
        if shares == position.shares:
            liquidity_removed = position.liquidity
        else:
            liquidity_removed = q(position.liquidity * shares / position.shares)

        # Vesting runs from the previous update, so measure before settling
        il_pct, vested, protection = self.il_protection(position, liquidity_removed, prices, now)
        if protection > 0:
            logger.debug(
                "%s: IL %s vested %s, protection %s on %s removed",
                provider, il_pct, vested, protection, liquidity_removed,
            )
        self._settle(position, now, rate_bps)
        reward = position.unclaimed_reward

        position.unclaimed_reward = ZERO
        position.shares -= shares
        position.liquidity -= liquidity_removed
        position.tier = tier_for(self.tiers, position.liquidity)
        self.total_shares -= shares

        return LiquidityWithdrawal(
            provider=provider,
            shares_burned=shares,
            principal=principal,
            reserve_releases=releases,
            liquidity_removed=liquidity_removed,
            il_pct=il_pct,
            vested_fraction=vested,
            il_protection=protection,
            reward=reward,
        )

    def burn_all(self, provider: str) -> Decimal:
        """Zero a position's shares (settlement redemption); returns the shares burned."""
        position = self.positions.get(provider)
        if position is None or position.shares <= 0:
            return ZERO
        burned = position.shares
        self._journal.remember(self.positions, provider)
        position.shares = ZERO
        position.liquidity = ZERO
        position.tier = tier_for(self.tiers, ZERO)
        self.total_shares -= burned
        return burned
