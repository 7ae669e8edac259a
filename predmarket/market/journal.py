"""
Undo journal for keyed market books.

Share balances, LP positions, predictor stats and commitments grow with a
market's history, so an operation cannot afford to copy them whole before
it runs. Instead each book remembers the prior value of every entry it is
about to touch; rollback puts those entries back and checkpoint forgets
them once the operation has committed.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, MutableMapping, Tuple

_ABSENT = object()


class UndoJournal:

    def __init__(self) -> None:
        self._saved: Dict[Tuple[int, Any], Tuple[MutableMapping, Any, Any]] = {}

    def __len__(self) -> int:
        return len(self._saved)

    def remember(self, mapping: MutableMapping, key: Any) -> None:
        """Save `mapping[key]` (or its absence) unless already saved since the checkpoint."""
        token = (id(mapping), key)
        if token in self._saved:
            return
        prior = copy.deepcopy(mapping[key]) if key in mapping else _ABSENT
        self._saved[token] = (mapping, key, prior)

    def checkpoint(self) -> None:
        self._saved.clear()

    def rollback(self) -> None:
        for mapping, key, prior in reversed(list(self._saved.values())):
            if prior is _ABSENT:
                mapping.pop(key, None)
            else:
                mapping[key] = prior
        self._saved.clear()
