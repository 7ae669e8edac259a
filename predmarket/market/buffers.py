"""
Rolling Statistics Buffers

Per-outcome fixed-capacity history used by the trade guard and the price
oracle:
  - PriceImpactBuffer: ring of recent price-impact values (bp) with a
    running sum, so the rolling average is O(1)
  - TWAPObservationLog: bounded (timestamp, price) log; time-weighted
    arithmetic mean where each sample is weighted by the time until the
    next sample (or until `now` for the latest)

Storage is allocated once at construction; recording never allocates per trade.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from ..constants import PRICE_IMPACT_BUFFER_SIZE, TWAP_OBSERVATION_CAPACITY
from ..exceptions import MarketArithmeticError, ValidationError
from .numeric import ZERO, q


# ---------------------------------------------------------------------------
# Price-impact ring buffer
# ---------------------------------------------------------------------------

class PriceImpactBuffer:
    """Fixed-capacity ring of price-impact values with a running sum."""

    def __init__(self, capacity: int = PRICE_IMPACT_BUFFER_SIZE):
        if capacity <= 0:
            raise ValidationError("Buffer capacity must be positive")
        self.capacity = capacity
        self._slots: List[Decimal] = [ZERO] * capacity
        self._head: int = 0      # next write position
        self._count: int = 0
        self._sum: Decimal = ZERO

    def __len__(self) -> int:
        return self._count

    @property
    def total(self) -> Decimal:
        return self._sum

    def record(self, value: Decimal) -> None:
        """Insert a value, evicting the oldest once full."""
        if self._count == self.capacity:
            self._sum -= self._slots[self._head]
        else:
            self._count += 1
        self._slots[self._head] = value
        self._sum += value
        self._head = (self._head + 1) % self.capacity

    def average(self) -> Decimal:
        if self._count == 0:
            return ZERO
        return q(self._sum / self._count)

    def average_with(self, candidate: Decimal) -> Decimal:
        """Average the buffer would have after recording `candidate`."""
        if self._count == self.capacity:
            total = self._sum - self._slots[self._head] + candidate
            return q(total / self.capacity)
        return q((self._sum + candidate) / (self._count + 1))

    def values(self) -> List[Decimal]:
        """Contents, oldest first."""
        start = (self._head - self._count) % self.capacity
        return [self._slots[(start + i) % self.capacity] for i in range(self._count)]


# ---------------------------------------------------------------------------
# TWAP observation log
# ---------------------------------------------------------------------------

@dataclass
class Observation:
    """A single price observation recorded at a point in time."""
    timestamp: int
    price: Decimal


class TWAPObservationLog:
    """
    Bounded append log of price observations for one outcome.

    Same-timestamp observations overwrite the previous one; timestamps
    must never go backwards.
    """

    def __init__(self, capacity: int = TWAP_OBSERVATION_CAPACITY):
        if capacity <= 0:
            raise ValidationError("Observation log capacity must be positive")
        self.capacity = capacity
        self._slots: List[Optional[Observation]] = [None] * capacity
        self._head: int = 0
        self._count: int = 0

    def __len__(self) -> int:
        return self._count

    @property
    def latest(self) -> Optional[Observation]:
        if self._count == 0:
            return None
        return self._slots[(self._head - 1) % self.capacity]

    def record(self, price: Decimal, timestamp: int) -> Observation:
        """
        Record a new price observation.

        Raises:
            ValidationError: non-positive price or timestamp going backwards
        """
        if price <= 0:
            raise ValidationError("Price must be positive")

        last = self.latest
        if last is not None:
            if timestamp < last.timestamp:
                raise ValidationError("Timestamp must be monotonically increasing")
            if timestamp == last.timestamp:
                last.price = price
                return last

        obs = Observation(timestamp=timestamp, price=price)
        self._slots[self._head] = obs
        self._head = (self._head + 1) % self.capacity
        if self._count < self.capacity:
            self._count += 1
        return obs

    def observations(self) -> List[Observation]:
        """Contents, oldest first."""
        start = (self._head - self._count) % self.capacity
        return [self._slots[(start + i) % self.capacity] for i in range(self._count)]

    def twap(self, now: int) -> Decimal:
        """
        Time-weighted average price as of `now`.

        Formula: Σ(price_i · Δt_i) / Σ Δt_i, Δt_i = t_{i+1} − t_i
        and Δt_last = now − t_last.

        Raises:
            MarketArithmeticError: no observations recorded
        """
        obs = self.observations()
        if not obs:
            raise MarketArithmeticError("TWAP unavailable: no price observations")
        if now < obs[-1].timestamp:
            raise ValidationError("TWAP query time precedes the latest observation")

        weighted = ZERO
        elapsed = 0
        for i, o in enumerate(obs):
            end = obs[i + 1].timestamp if i + 1 < len(obs) else now
            dt = end - o.timestamp
            weighted += o.price * dt
            elapsed += dt

        if elapsed == 0:
            return obs[-1].price
        return q(weighted / elapsed)
