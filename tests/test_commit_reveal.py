"""
Test suite for the commit-reveal protocol

Covers:
  - Commitment hashing and keys
  - CommitRevealBook checks in their documented order
  - Reveal through a live market (single reveal, revert keeps commitment open,
    malformed parameters rejected as validation errors)

Run with:
    pytest tests/test_commit_reveal.py -v
"""

from decimal import Decimal

import pytest

from predmarket.crypto import PrivateKey, sign_message
from predmarket.exceptions import AuthorizationError, ReplayError, ValidationError
from predmarket.market import MarketManager, RequestContext, TradeIntent, commitment_hash
from predmarket.market.commit_reveal import CommitRevealBook, commitment_key

T0 = 1_700_000_000
END = T0 + 7 * 86_400
MARKET = "abcdef0123456789"


def _intent(**overrides):
    fields = dict(
        outcome_index=0,
        amount=Decimal("10"),
        max_slippage_bps=10_000,
        is_buy=True,
        min_timestamp=T0 + 60,
        max_timestamp=T0 + 600,
        nonce=1,
    )
    fields.update(overrides)
    return TradeIntent(**fields)


# ============================================================================
#  HASHING
# ============================================================================

class TestCommitmentHash:

    def test_deterministic(self):
        assert commitment_hash(MARKET, _intent()) == commitment_hash(MARKET, _intent())
        assert len(commitment_hash(MARKET, _intent())) == 32

    def test_binds_every_parameter(self):
        base = commitment_hash(MARKET, _intent())
        variants = [
            _intent(outcome_index=1),
            _intent(amount=Decimal("10.000000000000000001")),
            _intent(max_slippage_bps=9_999),
            _intent(is_buy=False),
            _intent(min_timestamp=T0 + 61),
            _intent(max_timestamp=T0 + 601),
            _intent(nonce=2),
        ]
        for intent in variants:
            assert commitment_hash(MARKET, intent) != base

    def test_binds_market(self):
        assert commitment_hash(MARKET, _intent()) != commitment_hash("other", _intent())

    @pytest.mark.parametrize("field, value", [
        ("outcome_index", -1),
        ("outcome_index", 1 << 16),
        ("max_slippage_bps", -5),
        ("min_timestamp", -1),
        ("max_timestamp", 1 << 64),
        ("nonce", -1),
        ("nonce", 2 ** 300),
    ])
    def test_field_out_of_width(self, field, value):
        with pytest.raises(ValidationError, match=field):
            commitment_hash(MARKET, _intent(**{field: value}))

    def test_key_forms_agree(self):
        digest = commitment_hash(MARKET, _intent())
        assert commitment_key(digest) == commitment_key("0x" + digest.hex())
        assert commitment_key(digest.hex().upper()) == commitment_key(digest)

    def test_key_rejects_wrong_length(self):
        with pytest.raises(ValidationError, match="32 bytes"):
            commitment_key(b"\x00" * 31)

    def test_key_rejects_non_hex(self):
        with pytest.raises(ValidationError, match="hex"):
            commitment_key("0xzz")


# ============================================================================
#  COMMIT-REVEAL BOOK
# ============================================================================

class TestCommitRevealBook:

    def setup_method(self):
        self.key = PrivateKey.generate()
        self.trader = self.key.address
        self.book = CommitRevealBook(min_reveal_delay=60)
        self.intent = _intent()
        self.digest = commitment_hash(MARKET, self.intent)
        self.signature = sign_message(self.key, self.digest)
        self.book.commit(self.trader, self.digest, T0)

    def test_commit_recorded(self):
        record = self.book.get(self.digest)
        assert record.committer == self.trader
        assert record.commit_time == T0
        assert not record.revealed

    def test_duplicate_commit(self):
        with pytest.raises(ReplayError):
            self.book.commit(self.trader, self.digest, T0 + 1)

    def test_valid_reveal(self):
        key = self.book.verify_reveal(self.trader, MARKET, self.intent, self.signature, T0 + 60)
        self.book.mark_revealed(key, T0 + 60)
        assert self.book.get(self.digest).revealed

    def test_signature_as_bytes_and_hex(self):
        self.book.verify_reveal(self.trader, MARKET, self.intent, self.signature.to_bytes(), T0 + 60)
        self.book.verify_reveal(self.trader, MARKET, self.intent, self.signature.to_hex(), T0 + 60)

    def test_missing_commitment(self):
        with pytest.raises(ValidationError, match="No commitment"):
            self.book.verify_reveal(self.trader, MARKET, _intent(nonce=9), self.signature, T0 + 60)

    def test_other_committer(self):
        other = PrivateKey.generate().address
        with pytest.raises(AuthorizationError):
            self.book.verify_reveal(other, MARKET, self.intent, self.signature, T0 + 60)

    def test_already_revealed(self):
        key = self.book.verify_reveal(self.trader, MARKET, self.intent, self.signature, T0 + 60)
        self.book.mark_revealed(key, T0 + 60)
        with pytest.raises(ReplayError):
            self.book.verify_reveal(self.trader, MARKET, self.intent, self.signature, T0 + 61)

    def test_too_early(self):
        with pytest.raises(ValidationError, match="too early"):
            self.book.verify_reveal(self.trader, MARKET, self.intent, self.signature, T0 + 59)

    def test_outside_window(self):
        with pytest.raises(ValidationError, match="outside window"):
            self.book.verify_reveal(self.trader, MARKET, self.intent, self.signature, T0 + 601)

    def test_delay_checked_before_window(self):
        intent = _intent(min_timestamp=T0, max_timestamp=T0 + 10, nonce=5)
        digest = commitment_hash(MARKET, intent)
        self.book.commit(self.trader, digest, T0)
        with pytest.raises(ValidationError, match="too early"):
            self.book.verify_reveal(self.trader, MARKET, intent, sign_message(self.key, digest), T0 + 5)

    def test_wrong_signer(self):
        forged = sign_message(PrivateKey.generate(), self.digest)
        with pytest.raises(AuthorizationError, match="signature"):
            self.book.verify_reveal(self.trader, MARKET, self.intent, forged, T0 + 60)

    def test_signature_over_other_message(self):
        wrong = sign_message(self.key, b"\x00" * 32)
        with pytest.raises(AuthorizationError):
            self.book.verify_reveal(self.trader, MARKET, self.intent, wrong, T0 + 60)

    def test_malformed_signature(self):
        with pytest.raises(AuthorizationError, match="Malformed"):
            self.book.verify_reveal(self.trader, MARKET, self.intent, b"\x01\x02", T0 + 60)

    def test_verify_does_not_mutate(self):
        self.book.verify_reveal(self.trader, MARKET, self.intent, self.signature, T0 + 60)
        assert not self.book.get(self.digest).revealed


# ============================================================================
#  THROUGH A MARKET
# ============================================================================

class TestMarketReveal:

    def setup_method(self):
        self.key = PrivateKey.generate()
        self.trader = self.key.address
        manager = MarketManager()
        self.market = manager.create_market(
            RequestContext("operator", T0), "Will it rain?", ["YES", "NO"], END,
            initial_liquidity="1000",
        )

    def _commit(self, intent):
        commitment = self.market.commitment_for(intent)
        self.market.commit_trade(RequestContext(self.trader, T0), commitment)
        return commitment, sign_message(self.key, commitment)

    def _reveal(self, intent, signature, at, caller=None):
        return self.market.reveal_trade(
            RequestContext(caller or self.trader, at),
            intent.outcome_index, intent.amount, intent.max_slippage_bps, intent.is_buy,
            intent.min_timestamp, intent.max_timestamp, intent.nonce, signature,
        )

    def test_reveal_executes_trade_once(self):
        intent = _intent()
        _, signature = self._commit(intent)
        result = self._reveal(intent, signature, T0 + 60)
        assert result.amount_out > 0
        assert self.market.balance_of(0, self.trader) == result.amount_out

        with pytest.raises(ReplayError):
            self._reveal(intent, signature, T0 + 120)
        assert self.market.balance_of(0, self.trader) == result.amount_out

    def test_reveal_by_other_caller(self):
        intent = _intent()
        _, signature = self._commit(intent)
        with pytest.raises(AuthorizationError):
            self._reveal(intent, signature, T0 + 60, caller="someone-else")

    def test_failed_trade_keeps_commitment_open(self):
        intent = _intent(max_slippage_bps=0)
        commitment, signature = self._commit(intent)
        with pytest.raises(ValidationError, match="Slippage"):
            self._reveal(intent, signature, T0 + 60)
        assert not self.market.state.commitments.get(commitment).revealed

    def test_duplicate_commit_through_market(self):
        intent = _intent()
        commitment, _ = self._commit(intent)
        with pytest.raises(ReplayError):
            self.market.commit_trade(RequestContext(self.trader, T0 + 5), commitment)

    def test_commit_event_emitted(self):
        commitment, _ = self._commit(_intent())
        assert self.market.events[-1].kind == "TradeCommitted"
        assert self.market.events[-1].data["commitment"] == "0x" + commitment.hex()

    @pytest.mark.parametrize("field, value", [
        ("outcome_index", -1),
        ("outcome_index", 2),
        ("max_slippage_bps", -5),
        ("max_slippage_bps", 10_001),
        ("min_timestamp", -1),
        ("nonce", -1),
        ("nonce", 2 ** 300),
    ])
    def test_malformed_reveal_rejected(self, field, value):
        _, signature = self._commit(_intent())
        events_before = len(self.market.events)
        with pytest.raises(ValidationError):
            self._reveal(_intent(**{field: value}), signature, T0 + 60)
        assert len(self.market.events) == events_before
        assert self.market.balance_of(0, self.trader) == 0
