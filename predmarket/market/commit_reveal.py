"""
Commit-Reveal Protocol

Two-phase gate in front of trade execution that hides trade parameters
until a minimum delay has passed:

    absent ──commit──▶ COMMITTED ──reveal──▶ REVEALED (terminal)

The commitment is keccak256 over a domain tag, the market id and the exact
trade parameters. A reveal must come from the committer, after the minimum
delay, inside the caller-declared time window, and carry an EIP-191
signature of the commitment by the committing address. Records are kept
forever so a commitment hash can never be replayed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Union

from ..constants import COMMIT_DOMAIN, MIN_REVEAL_DELAY
from ..crypto import keccak256, recover_signer_address, same_address
from ..crypto.keys import Signature
from ..exceptions import AuthorizationError, ReplayError, ValidationError
from ..logger import get_logger
from .journal import UndoJournal
from .numeric import q

logger = get_logger(__name__)

SignatureLike = Union[Signature, bytes, str]


@dataclass
class CommitRecord:
    committer: str
    commit_time: int
    revealed: bool = False
    revealed_at: Optional[int] = None


@dataclass(frozen=True)
class TradeIntent:
    """The exact parameters a commitment binds."""
    outcome_index: int
    amount: Decimal
    max_slippage_bps: int
    is_buy: bool
    min_timestamp: int
    max_timestamp: int
    nonce: int


def _field_bytes(name: str, value: int, width: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 1 << (8 * width):
        raise ValidationError(f"{name} must be an unsigned {8 * width}-bit integer, got {value!r}")
    return value.to_bytes(width, "big")


def commitment_hash(market_id: str, intent: TradeIntent) -> bytes:
    """
    Deterministic 32-byte commitment for a trade intent.

    Raises:
        ValidationError: an integer field does not fit its fixed width
    """
    payload = (
        COMMIT_DOMAIN
        + market_id.encode()
        + _field_bytes("outcome_index", intent.outcome_index, 2)
        + str(q(intent.amount)).encode()
        + _field_bytes("max_slippage_bps", intent.max_slippage_bps, 4)
        + (b"\x01" if intent.is_buy else b"\x00")
        + _field_bytes("min_timestamp", intent.min_timestamp, 8)
        + _field_bytes("max_timestamp", intent.max_timestamp, 8)
        + _field_bytes("nonce", intent.nonce, 32)
    )
    return keccak256(payload)


def commitment_key(commitment: Union[bytes, str]) -> str:
    """Canonical 0x-prefixed lowercase hex key for a commitment."""
    if isinstance(commitment, bytes):
        raw = commitment
    else:
        text = commitment[2:] if commitment[:2].lower() == "0x" else commitment
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raise ValidationError("Commitment must be hex-encoded")
    if len(raw) != 32:
        raise ValidationError(f"Commitment must be 32 bytes, got {len(raw)}")
    return "0x" + raw.hex()


class CommitRevealBook:
    """Commitments of one market, keyed by commitment hash."""

    def __init__(self, min_reveal_delay: int = MIN_REVEAL_DELAY):
        self.min_reveal_delay = min_reveal_delay
        self._records: Dict[str, CommitRecord] = {}
        self._journal = UndoJournal()

    def __len__(self) -> int:
        return len(self._records)

    def checkpoint(self) -> None:
        self._journal.checkpoint()

    def rollback(self) -> None:
        self._journal.rollback()

    def get(self, commitment: Union[bytes, str]) -> Optional[CommitRecord]:
        return self._records.get(commitment_key(commitment))

    def commit(self, committer: str, commitment: Union[bytes, str], now: int) -> CommitRecord:
        """
        Store a new commitment.

        Raises:
            ReplayError: the commitment already exists
        """
        key = commitment_key(commitment)
        if key in self._records:
            raise ReplayError(f"Duplicate commitment {key}")
        self._journal.remember(self._records, key)
        record = CommitRecord(committer=committer, commit_time=now)
        self._records[key] = record
        return record

    def verify_reveal(
        self,
        caller: str,
        market_id: str,
        intent: TradeIntent,
        signature: SignatureLike,
        now: int,
    ) -> str:
        """
        Check a reveal without changing anything.

        Returns:
            The commitment key to mark revealed once the trade succeeds.
        """
        digest = commitment_hash(market_id, intent)
        key = commitment_key(digest)
        record = self._records.get(key)
        if record is None:
            raise ValidationError("No commitment matches the revealed parameters")
        if record.committer != caller:
            raise AuthorizationError("Commitment belongs to another caller")
        if record.revealed:
            raise ReplayError(f"Commitment {key} already revealed")
        if now < record.commit_time + self.min_reveal_delay:
            raise ValidationError(
                f"Reveal too early: {now - record.commit_time}s since commit, "
                f"minimum {self.min_reveal_delay}s"
            )
        if not intent.min_timestamp <= now <= intent.max_timestamp:
            raise ValidationError(
                f"Reveal at {now} outside window [{intent.min_timestamp}, {intent.max_timestamp}]"
            )

        try:
            signer = recover_signer_address(digest, signature)
        except Exception as e:
            raise AuthorizationError(f"Malformed reveal signature: {e}")
        if not same_address(signer, record.committer):
            raise AuthorizationError("Reveal signature does not match the committer")
        return key

    def mark_revealed(self, key: str, now: int) -> None:
        self._journal.remember(self._records, key)
        record = self._records[key]
        record.revealed = True
        record.revealed_at = now
        logger.debug("Commitment %s revealed at %d", key, now)
