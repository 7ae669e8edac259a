"""
Market Lifecycle

Forward-only phase machine:

    ACTIVE ──lock──▶ LOCKED ──start_resolution──▶ RESOLUTION ──fulfill──▶ SETTLED
"""

from enum import IntEnum
from typing import Dict, Iterable, Set

from ..exceptions import PhaseViolation


class MarketPhase(IntEnum):
    ACTIVE = 0        # Trading, commit-reveal, liquidity
    LOCKED = 1        # Trading closed, awaiting end time
    RESOLUTION = 2    # Outcome requested from the oracle
    SETTLED = 3       # Winner known; only claims


_VALID_TRANSITIONS: Dict[MarketPhase, Set[MarketPhase]] = {
    MarketPhase.ACTIVE:     {MarketPhase.LOCKED},
    MarketPhase.LOCKED:     {MarketPhase.RESOLUTION},
    MarketPhase.RESOLUTION: {MarketPhase.SETTLED},
    # Terminal
    MarketPhase.SETTLED:    set(),
}


def can_transition(current: MarketPhase, target: MarketPhase) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


def require_phase(current: MarketPhase, allowed: Iterable[MarketPhase], operation: str) -> None:
    """Raise PhaseViolation unless `current` is one of `allowed`."""
    allowed = tuple(allowed)
    if current not in allowed:
        names = "/".join(p.name for p in allowed)
        raise PhaseViolation(f"{operation} requires phase {names}, market is {current.name}")


def transition(current: MarketPhase, target: MarketPhase) -> MarketPhase:
    if not can_transition(current, target):
        raise PhaseViolation(f"Cannot transition from {current.name} to {target.name}")
    return target
