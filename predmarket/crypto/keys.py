"""
Crypto Keys Module

secp256k1 keys held by traders, and the 65-byte signatures they attach
to a trade reveal.
"""

import secrets
from typing import Union

from eth_keys.datatypes import (
    PrivateKey as EthPrivateKey,
    PublicKey as EthPublicKey,
    Signature as EthSignature,
)
from eth_utils import decode_hex

from ..exceptions import ValidationError

SIGNATURE_LENGTH = 65


class PrivateKey:
    """Trader signing key (wraps eth-keys)."""

    def __init__(self, key_bytes: bytes):
        if len(key_bytes) != 32:
            raise ValidationError(f"Private key must be 32 bytes, got {len(key_bytes)}")
        try:
            self._key = EthPrivateKey(key_bytes)
        except Exception as e:
            raise ValidationError(f"Invalid private key: {e}")

    @classmethod
    def from_hex(cls, hex_str: str) -> "PrivateKey":
        return cls(decode_hex(hex_str))

    @classmethod
    def generate(cls) -> "PrivateKey":
        return cls(secrets.token_bytes(32))

    @property
    def public_key(self) -> "PublicKey":
        return PublicKey(self._key.public_key)

    @property
    def address(self) -> str:
        """Checksum address the market records as committer."""
        return self.public_key.to_address()

    def to_bytes(self) -> bytes:
        return self._key.to_bytes()

    def sign_msg_hash(self, msg_hash: bytes) -> "Signature":
        if len(msg_hash) != 32:
            raise ValidationError(f"Message hash must be 32 bytes, got {len(msg_hash)}")
        return Signature(self._key.sign_msg_hash(msg_hash))

    def __repr__(self) -> str:
        return f"PrivateKey({self.address})"

    def __eq__(self, other) -> bool:
        return isinstance(other, PrivateKey) and self._key == other._key


class PublicKey:
    """Recovered signer key; only used to derive an address."""

    def __init__(self, key: Union[EthPublicKey, bytes]):
        if isinstance(key, bytes):
            if len(key) == 65 and key[0] == 0x04:
                key = key[1:]
            if len(key) != 64:
                raise ValidationError(f"Invalid public key length: {len(key)}")
            key = EthPublicKey(key)
        self._key = key

    @classmethod
    def recover_from_msg_hash(cls, msg_hash: bytes, signature: "Signature") -> "PublicKey":
        return cls(signature.eth_signature.recover_public_key_from_msg_hash(msg_hash))

    def to_bytes(self) -> bytes:
        return self._key.to_bytes()

    def to_address(self) -> str:
        from .address import public_key_to_address
        return public_key_to_address(self)

    def __repr__(self) -> str:
        return f"PublicKey({self.to_address()})"


class Signature:
    """
    Recoverable ECDSA signature.

    Wire form is r[32] || s[32] || v[1]; v is accepted as 0/1 or 27/28.
    """

    def __init__(self, signature: EthSignature):
        self.eth_signature = signature

    @classmethod
    def from_bytes(cls, sig_bytes: bytes) -> "Signature":
        if len(sig_bytes) != SIGNATURE_LENGTH:
            raise ValidationError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(sig_bytes)}")
        r = int.from_bytes(sig_bytes[0:32], byteorder='big')
        s = int.from_bytes(sig_bytes[32:64], byteorder='big')
        v = sig_bytes[64]
        if v >= 27:
            v -= 27
        try:
            return cls(EthSignature(vrs=(v, r, s)))
        except Exception as e:
            raise ValidationError(f"Invalid signature: {e}")

    @classmethod
    def from_hex(cls, hex_str: str) -> "Signature":
        return cls.from_bytes(decode_hex(hex_str))

    def to_bytes(self) -> bytes:
        sig = self.eth_signature
        return sig.r.to_bytes(32, byteorder='big') + sig.s.to_bytes(32, byteorder='big') + bytes([sig.v])

    def to_hex(self, with_prefix: bool = True) -> str:
        hex_str = self.to_bytes().hex()
        return f"0x{hex_str}" if with_prefix else hex_str

    def __repr__(self) -> str:
        return f"Signature({self.to_hex()[:18]}...)"
