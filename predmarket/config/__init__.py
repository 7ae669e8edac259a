"""
Market Configuration

Loads market parameters from config.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    MarketConfig,
    FeeConfig,
    CurveConfig,
    GuardConfig,
    CommitRevealConfig,
    LiquidityConfig,
    PredictorConfig,
    LifecycleConfig,
    load_config,
)

__all__ = [
    "MarketConfig",
    "FeeConfig",
    "CurveConfig",
    "GuardConfig",
    "CommitRevealConfig",
    "LiquidityConfig",
    "PredictorConfig",
    "LifecycleConfig",
    "load_config",
]
