"""
Outcome share ledger.

One fungible share per outcome with a balance per holder. Shares enter
circulation when they leave an outcome reserve (buys, liquidity removal)
and leave it when they are returned (sells) or redeemed at settlement.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List

from ..exceptions import MarketArithmeticError, ValidationError
from .journal import UndoJournal
from .numeric import ZERO


class OutcomeShareLedger:

    def __init__(self, outcome_count: int):
        self._balances: List[Dict[str, Decimal]] = [{} for _ in range(outcome_count)]
        self._supply: List[Decimal] = [ZERO] * outcome_count
        self._journal = UndoJournal()
        self._saved_supply: List[Decimal] = list(self._supply)

    @property
    def outcome_count(self) -> int:
        return len(self._balances)

    def _check_outcome(self, outcome: int) -> None:
        if not 0 <= outcome < len(self._balances):
            raise ValidationError(f"Invalid outcome index {outcome}")

    def balance_of(self, outcome: int, holder: str) -> Decimal:
        self._check_outcome(outcome)
        return self._balances[outcome].get(holder, ZERO)

    def total_supply(self, outcome: int) -> Decimal:
        self._check_outcome(outcome)
        return self._supply[outcome]

    def holders(self, outcome: int) -> List[str]:
        """Holders with a positive balance, in sorted (deterministic) order."""
        self._check_outcome(outcome)
        return sorted(h for h, b in self._balances[outcome].items() if b > 0)

    def mint(self, outcome: int, holder: str, amount: Decimal) -> None:
        self._check_outcome(outcome)
        if amount < 0:
            raise ValidationError("Mint amount must be non-negative")
        if amount == 0:
            return
        book = self._balances[outcome]
        self._journal.remember(book, holder)
        book[holder] = book.get(holder, ZERO) + amount
        self._supply[outcome] += amount

    def burn(self, outcome: int, holder: str, amount: Decimal) -> None:
        """
        Raises:
            MarketArithmeticError: holder balance is lower than `amount`
        """
        self._check_outcome(outcome)
        if amount < 0:
            raise ValidationError("Burn amount must be non-negative")
        book = self._balances[outcome]
        balance = book.get(holder, ZERO)
        if balance < amount:
            raise MarketArithmeticError(
                f"Insufficient outcome {outcome} balance: have {balance}, need {amount}"
            )
        self._journal.remember(book, holder)
        book[holder] = balance - amount
        self._supply[outcome] -= amount

    def checkpoint(self) -> None:
        self._journal.checkpoint()
        self._saved_supply = list(self._supply)

    def rollback(self) -> None:
        self._journal.rollback()
        self._supply = list(self._saved_supply)
