"""
Crypto Module

Cryptographic primitives used by the commit-reveal protocol:
- secp256k1 keys and signatures
- EIP-191 message signing and signer recovery
- keccak256 / blake2b hashing
- checksum address derivation
"""

from .keys import PrivateKey, PublicKey, Signature
from .signing import (
    personal_message_hash,
    sign_message,
    recover_message_signer,
    recover_signer_address,
)
from .hashing import keccak256, blake2b_hex
from .address import (
    public_key_to_address,
    is_valid_address,
    same_address,
)

__all__ = [
    # Keys
    "PrivateKey",
    "PublicKey",
    "Signature",
    # Signing
    "personal_message_hash",
    "sign_message",
    "recover_message_signer",
    "recover_signer_address",
    # Hashing
    "keccak256",
    "blake2b_hex",
    # Address
    "public_key_to_address",
    "is_valid_address",
    "same_address",
]
