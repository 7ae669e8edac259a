"""
Crypto Address Module

Ethereum-style addresses (last 20 bytes of keccak256 of the public key)
with EIP-55 checksums.
"""

from eth_utils import is_hex_address, to_checksum_address

from .hashing import keccak256

TRADITIONAL_PREFIX = "0x"


def public_key_to_address(public_key) -> str:
    """
    Derive a checksum address from a secp256k1 public key.

    Args:
        public_key: PublicKey instance or 64/65-byte uncompressed key

    Returns:
        Checksum address with 0x prefix
    """
    if hasattr(public_key, 'to_bytes'):
        pub_bytes = public_key.to_bytes()
    else:
        pub_bytes = public_key

    # Remove 04 prefix if present (uncompressed secp256k1)
    if len(pub_bytes) == 65 and pub_bytes[0] == 0x04:
        pub_bytes = pub_bytes[1:]
    if len(pub_bytes) != 64:
        raise ValueError(f"secp256k1 public key must be 64 bytes, got {len(pub_bytes)}")

    return to_checksum_address(keccak256(pub_bytes)[-20:])


def is_valid_address(address: str) -> bool:
    """True for a 0x-prefixed 20-byte hex address (any casing)."""
    return isinstance(address, str) and address.startswith(TRADITIONAL_PREFIX) and is_hex_address(address)


def same_address(a: str, b: str) -> bool:
    """Case-insensitive address equality; False if either is not an address."""
    if not (is_valid_address(a) and is_valid_address(b)):
        return False
    return a.lower() == b.lower()
