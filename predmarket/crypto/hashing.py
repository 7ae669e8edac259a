"""
Crypto Hashing Module

Provides the hash functions used by the engine:
- keccak256: commitment hashes and address derivation
- blake2b: deterministic identifiers and state digests
"""

import hashlib
from typing import Union

from Crypto.Hash import keccak as _keccak


def _to_bytes(data: Union[bytes, str]) -> bytes:
    if isinstance(data, str):
        if data.startswith('0x') or data.startswith('0X'):
            return bytes.fromhex(data[2:])
        return bytes.fromhex(data)
    return data


def keccak256(data: Union[bytes, str]) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum standard).

    Args:
        data: Input bytes or hex string

    Returns:
        32-byte hash
    """
    k = _keccak.new(digest_bits=256)
    k.update(_to_bytes(data))
    return k.digest()


def blake2b_hex(data: bytes, digest_size: int = 8) -> str:
    """Short deterministic identifier (consensus-safe, no uuid4)."""
    return hashlib.blake2b(data, digest_size=digest_size).hexdigest()
