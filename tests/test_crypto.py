"""
Crypto Test Suite

Tests for:
- keccak256 / blake2b hashing
- secp256k1 keys and signature encoding
- personal_sign signing and signer recovery
- Checksum addresses

Run with:
    pytest tests/test_crypto.py -v
"""

import pytest

from predmarket.exceptions import ValidationError
from predmarket.crypto import (
    PrivateKey,
    Signature,
    blake2b_hex,
    is_valid_address,
    keccak256,
    public_key_to_address,
    recover_signer_address,
    same_address,
    sign_message,
)

# ============================================================================
# Hashing
# ============================================================================


class TestHashing:

    def test_keccak_empty(self):
        assert keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_blake2b_digest_size(self):
        assert len(blake2b_hex(b"market", digest_size=8)) == 16
        assert blake2b_hex(b"market") == blake2b_hex(b"market")
        assert blake2b_hex(b"market") != blake2b_hex(b"market2")


# ============================================================================
# Keys and addresses
# ============================================================================


class TestKeys:

    def test_known_address(self):
        key = PrivateKey.from_hex("0x" + "00" * 31 + "01")
        assert key.address == "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"

    def test_address_from_public_key(self):
        key = PrivateKey.generate()
        assert public_key_to_address(key.public_key) == key.address

    def test_hex_round_trip(self):
        key = PrivateKey.generate()
        assert PrivateKey.from_hex(key.to_bytes().hex()) == key

    def test_invalid_key_length(self):
        with pytest.raises(ValidationError):
            PrivateKey(b"\x01" * 31)


class TestAddresses:

    def test_validity(self):
        assert is_valid_address("0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf")
        assert not is_valid_address("7E5F4552091A69125d5DfCb7b8C2659029395Bdf")
        assert not is_valid_address("0x1234")

    def test_same_address_ignores_case(self):
        addr = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
        assert same_address(addr, addr.lower())
        assert not same_address(addr, "not-an-address")


# ============================================================================
# Signing
# ============================================================================


class TestSigning:

    def setup_method(self):
        self.key = PrivateKey.generate()
        self.message = keccak256(b"commitment")

    def test_recover_signer(self):
        signature = sign_message(self.key, self.message)
        assert recover_signer_address(self.message, signature) == self.key.address

    def test_recover_from_bytes_and_hex(self):
        signature = sign_message(self.key, self.message)
        assert recover_signer_address(self.message, signature.to_bytes()) == self.key.address
        assert recover_signer_address(self.message, signature.to_hex()) == self.key.address

    def test_signature_encoding(self):
        signature = sign_message(self.key, self.message)
        raw = signature.to_bytes()
        assert len(raw) == 65
        assert Signature.from_bytes(raw).to_bytes() == raw
        assert Signature.from_hex(signature.to_hex()).to_bytes() == raw

    def test_other_message_recovers_other_signer(self):
        signature = sign_message(self.key, self.message)
        assert recover_signer_address(b"other", signature) != self.key.address
