"""
Market Manager

Registry of markets. Handles:
  - Market creation with deterministic ids (blake2b, no uuid4)
  - Optional initial liquidity from the creator
  - Lookup by id
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union

from ..config import MarketConfig
from ..crypto import blake2b_hex
from ..exceptions import ValidationError
from ..logger import get_logger
from .engine import PredictionMarket
from .interfaces import Collaborators
from .state import RequestContext

logger = get_logger(__name__)


class MarketManager:
    """
    Creates and tracks markets that share one configuration.

    Each market gets its own collaborator set when one is passed to
    create_market; otherwise the manager's default set is used.
    """

    def __init__(
        self,
        config: Optional[MarketConfig] = None,
        collaborators: Optional[Collaborators] = None,
    ) -> None:
        self.config = config or MarketConfig()
        self.collaborators = collaborators or Collaborators()
        self._markets: Dict[str, PredictionMarket] = {}
        self._market_sequence: int = 0

    @property
    def market_count(self) -> int:
        return len(self._markets)

    def create_market(
        self,
        ctx: RequestContext,
        name: str,
        outcomes: Sequence[str],
        end_time: int,
        initial_liquidity: Union[Decimal, int, str, None] = None,
        collaborators: Optional[Collaborators] = None,
    ) -> PredictionMarket:
        """
        Create a market operated by the caller.

        Args:
            ctx: creator and creation time
            name: market question
            outcomes: outcome names
            end_time: trading closes at this timestamp
            initial_liquidity: seed deposit made by the creator, if any
        """
        if not name:
            raise ValidationError("Market name is required")

        self._market_sequence += 1
        market_id = self._deterministic_market_id(name, ctx.caller, ctx.timestamp, self._market_sequence)
        market = PredictionMarket(
            market_id=market_id,
            name=name,
            outcomes=outcomes,
            end_time=end_time,
            created_at=ctx.timestamp,
            operator=ctx.caller,
            config=self.config,
            collaborators=collaborators or self.collaborators,
        )
        if initial_liquidity is not None:
            market.add_liquidity(ctx, initial_liquidity)

        self._markets[market_id] = market
        logger.info("Market %s registered (%d total)", market_id, len(self._markets))
        return market

    def get_market(self, market_id: str) -> Optional[PredictionMarket]:
        return self._markets.get(market_id)

    def get_all_markets(self) -> List[PredictionMarket]:
        return list(self._markets.values())

    @staticmethod
    def _deterministic_market_id(name: str, creator: str, created_at: int, seq: int) -> str:
        raw = f"{name}:{creator}:{created_at}:{seq}".encode()
        return blake2b_hex(raw)
