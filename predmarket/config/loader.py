"""
Market TOML Configuration Loader

Loads every market-parameter section of a config.toml with environment
variable overrides (dataclass + from_dict + apply_env per section).

Environment variable mapping:
    [fees] base_fee_bps          → PREDMARKET_BASE_FEE_BPS
    [guard] max_price_impact_bps → PREDMARKET_MAX_PRICE_IMPACT_BPS
    ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from .. import constants as C
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _env_int(name: str) -> Optional[int]:
    v = os.environ.get(name)
    if v is None or v == "":
        return None
    try:
        return int(v)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {v!r}")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class FeeConfig:
    """[fees] section."""
    base_fee_bps: int = C.BASE_FEE_BPS
    max_fee_bps: int = C.MAX_FEE_BPS
    volatility_window: int = C.VOLATILITY_WINDOW
    treasury_share_bps: int = C.FEE_TREASURY_SHARE_BPS
    referral_share_bps: int = C.FEE_REFERRAL_SHARE_BPS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeeConfig":
        return cls(
            base_fee_bps=data.get("base_fee_bps", C.BASE_FEE_BPS),
            max_fee_bps=data.get("max_fee_bps", C.MAX_FEE_BPS),
            volatility_window=data.get("volatility_window", C.VOLATILITY_WINDOW),
            treasury_share_bps=data.get("treasury_share_bps", C.FEE_TREASURY_SHARE_BPS),
            referral_share_bps=data.get("referral_share_bps", C.FEE_REFERRAL_SHARE_BPS),
        )

    def apply_env(self) -> None:
        if (v := _env_int("PREDMARKET_BASE_FEE_BPS")) is not None:
            self.base_fee_bps = v
        if (v := _env_int("PREDMARKET_MAX_FEE_BPS")) is not None:
            self.max_fee_bps = v

    def validate(self) -> None:
        if not 0 <= self.base_fee_bps <= self.max_fee_bps < C.BPS_DENOMINATOR:
            raise ConfigurationError(
                f"fees: need 0 <= base ({self.base_fee_bps}) <= max ({self.max_fee_bps}) < 10000"
            )
        if self.volatility_window <= 0:
            raise ConfigurationError("fees: volatility_window must be positive")
        if self.treasury_share_bps + self.referral_share_bps > C.BPS_DENOMINATOR:
            raise ConfigurationError("fees: treasury + referral shares exceed 100%")


@dataclass
class CurveConfig:
    """[curve] section."""
    adjustment_bps: int = C.CURVE_ADJUSTMENT_BPS
    min_price: Decimal = C.MIN_PRICE
    max_price: Decimal = C.MAX_PRICE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CurveConfig":
        return cls(
            adjustment_bps=data.get("adjustment_bps", C.CURVE_ADJUSTMENT_BPS),
            min_price=Decimal(str(data.get("min_price", C.MIN_PRICE))),
            max_price=Decimal(str(data.get("max_price", C.MAX_PRICE))),
        )

    def apply_env(self) -> None:
        if (v := _env_int("PREDMARKET_CURVE_ADJUSTMENT_BPS")) is not None:
            self.adjustment_bps = v

    def validate(self) -> None:
        if self.adjustment_bps < 0:
            raise ConfigurationError("curve: adjustment_bps must be non-negative")
        if not Decimal("0") < self.min_price < C.MID_PRICE < self.max_price < Decimal("1"):
            raise ConfigurationError("curve: need 0 < min_price < 0.5 < max_price < 1")


@dataclass
class GuardConfig:
    """[guard] section."""
    max_price_impact_bps: int = C.MAX_PRICE_IMPACT_BPS
    impact_buffer_size: int = C.PRICE_IMPACT_BUFFER_SIZE
    twap_capacity: int = C.TWAP_OBSERVATION_CAPACITY
    mev_withhold_rate_bps: int = C.MEV_WITHHOLD_RATE_BPS
    max_mev_withhold_bps: int = C.MAX_MEV_WITHHOLD_BPS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuardConfig":
        return cls(
            max_price_impact_bps=data.get("max_price_impact_bps", C.MAX_PRICE_IMPACT_BPS),
            impact_buffer_size=data.get("impact_buffer_size", C.PRICE_IMPACT_BUFFER_SIZE),
            twap_capacity=data.get("twap_capacity", C.TWAP_OBSERVATION_CAPACITY),
            mev_withhold_rate_bps=data.get("mev_withhold_rate_bps", C.MEV_WITHHOLD_RATE_BPS),
            max_mev_withhold_bps=data.get("max_mev_withhold_bps", C.MAX_MEV_WITHHOLD_BPS),
        )

    def apply_env(self) -> None:
        if (v := _env_int("PREDMARKET_MAX_PRICE_IMPACT_BPS")) is not None:
            self.max_price_impact_bps = v

    def validate(self) -> None:
        if self.impact_buffer_size <= 0 or self.twap_capacity <= 0:
            raise ConfigurationError("guard: buffer capacities must be positive")
        if not 0 <= self.max_mev_withhold_bps <= C.BPS_DENOMINATOR:
            raise ConfigurationError("guard: max_mev_withhold_bps out of range")


@dataclass
class CommitRevealConfig:
    """[commit_reveal] section."""
    min_reveal_delay: int = C.MIN_REVEAL_DELAY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitRevealConfig":
        return cls(min_reveal_delay=data.get("min_reveal_delay", C.MIN_REVEAL_DELAY))

    def apply_env(self) -> None:
        if (v := _env_int("PREDMARKET_MIN_REVEAL_DELAY")) is not None:
            self.min_reveal_delay = v


@dataclass
class LiquidityConfig:
    """[liquidity] section."""
    il_protection_period: int = C.IL_PROTECTION_PERIOD
    max_il_protection_bps: int = C.MAX_IL_PROTECTION_BPS
    tiers: List[Tuple[Decimal, int]] = field(default_factory=lambda: list(C.LIQUIDITY_TIERS))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LiquidityConfig":
        raw_tiers = data.get("tiers")
        tiers = (
            [(Decimal(str(t["min_liquidity"])), int(t["multiplier_bps"])) for t in raw_tiers]
            if raw_tiers else list(C.LIQUIDITY_TIERS)
        )
        return cls(
            il_protection_period=data.get("il_protection_period", C.IL_PROTECTION_PERIOD),
            max_il_protection_bps=data.get("max_il_protection_bps", C.MAX_IL_PROTECTION_BPS),
            tiers=tiers,
        )

    def apply_env(self) -> None:
        if (v := _env_int("PREDMARKET_IL_PROTECTION_PERIOD")) is not None:
            self.il_protection_period = v

    def validate(self) -> None:
        if not self.tiers:
            raise ConfigurationError("liquidity: at least one tier is required")
        minimums = [t[0] for t in self.tiers]
        if minimums != sorted(minimums) or len(set(minimums)) != len(minimums):
            raise ConfigurationError("liquidity: tiers must be strictly ascending")
        if self.il_protection_period <= 0:
            raise ConfigurationError("liquidity: il_protection_period must be positive")


@dataclass
class PredictorConfig:
    """[predictors] section."""
    streak_window: int = C.STREAK_WINDOW
    early_window: int = C.EARLY_PREDICTOR_WINDOW
    accuracy_reward_rate_bps: int = C.ACCURACY_REWARD_RATE_BPS
    early_bonus_bps: int = C.EARLY_PREDICTOR_BONUS_BPS
    streak_bonus_bps: int = C.STREAK_BONUS_BPS
    max_streak_bonus_bps: int = C.MAX_STREAK_BONUS_BPS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PredictorConfig":
        return cls(
            streak_window=data.get("streak_window", C.STREAK_WINDOW),
            early_window=data.get("early_window", C.EARLY_PREDICTOR_WINDOW),
            accuracy_reward_rate_bps=data.get("accuracy_reward_rate_bps", C.ACCURACY_REWARD_RATE_BPS),
            early_bonus_bps=data.get("early_bonus_bps", C.EARLY_PREDICTOR_BONUS_BPS),
            streak_bonus_bps=data.get("streak_bonus_bps", C.STREAK_BONUS_BPS),
            max_streak_bonus_bps=data.get("max_streak_bonus_bps", C.MAX_STREAK_BONUS_BPS),
        )


@dataclass
class LifecycleConfig:
    """[lifecycle] section."""
    lock_window: int = C.LOCK_WINDOW

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LifecycleConfig":
        return cls(lock_window=data.get("lock_window", C.LOCK_WINDOW))

    def apply_env(self) -> None:
        if (v := _env_int("PREDMARKET_LOCK_WINDOW")) is not None:
            self.lock_window = v


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class MarketConfig:
    """All market parameters; shared by every market a manager creates."""
    fees: FeeConfig = field(default_factory=FeeConfig)
    curve: CurveConfig = field(default_factory=CurveConfig)
    guard: GuardConfig = field(default_factory=GuardConfig)
    commit_reveal: CommitRevealConfig = field(default_factory=CommitRevealConfig)
    liquidity: LiquidityConfig = field(default_factory=LiquidityConfig)
    predictors: PredictorConfig = field(default_factory=PredictorConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketConfig":
        return cls(
            fees=FeeConfig.from_dict(data.get("fees", {})),
            curve=CurveConfig.from_dict(data.get("curve", {})),
            guard=GuardConfig.from_dict(data.get("guard", {})),
            commit_reveal=CommitRevealConfig.from_dict(data.get("commit_reveal", {})),
            liquidity=LiquidityConfig.from_dict(data.get("liquidity", {})),
            predictors=PredictorConfig.from_dict(data.get("predictors", {})),
            lifecycle=LifecycleConfig.from_dict(data.get("lifecycle", {})),
        )

    def apply_env(self) -> None:
        """Apply environment variable overrides to every section."""
        self.fees.apply_env()
        self.curve.apply_env()
        self.guard.apply_env()
        self.commit_reveal.apply_env()
        self.liquidity.apply_env()
        self.lifecycle.apply_env()

    def validate(self) -> None:
        self.fees.validate()
        self.curve.validate()
        self.guard.validate()
        self.liquidity.validate()

    @classmethod
    def from_file(cls, path: Path) -> "MarketConfig":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        with open(path, "rb") as f:
            data = tomli.load(f)
        return cls.from_dict(data)


def load_config(path: Optional[Path] = None, apply_env: bool = True) -> MarketConfig:
    """
    Load the market configuration.

    Args:
        path: config.toml location; defaults are used when None
        apply_env: apply PREDMARKET_* environment overrides

    Returns:
        A validated MarketConfig
    """
    if path is not None:
        config = MarketConfig.from_file(path)
        logger.info("Loaded market config from %s", path)
    else:
        config = MarketConfig()
    if apply_env:
        config.apply_env()
    config.validate()
    return config
