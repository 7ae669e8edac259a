"""
Crypto Signing Module

EIP-191 (personal_sign) message signing and signer recovery over secp256k1.
"""

from typing import Union

from .hashing import keccak256
from .keys import PrivateKey, PublicKey, Signature


def personal_message_hash(message: bytes) -> bytes:
    """
    Hash a message with the "\\x19Ethereum Signed Message:\\n{length}" prefix.
    """
    prefix = b'\x19Ethereum Signed Message:\n' + str(len(message)).encode()
    return keccak256(prefix + message)


def sign_message(private_key: PrivateKey, message: bytes) -> Signature:
    """
    Sign a message (Ethereum personal_sign style).

    Args:
        private_key: PrivateKey to sign with
        message: Raw message bytes

    Returns:
        Signature
    """
    return private_key.sign_msg_hash(personal_message_hash(message))


def recover_message_signer(message: bytes, signature: Signature) -> PublicKey:
    """Recover the signer public key from a personal_sign signature."""
    return PublicKey.recover_from_msg_hash(personal_message_hash(message), signature)


def recover_signer_address(message: bytes, signature: Union[Signature, bytes, str]) -> str:
    """
    Recover the checksum address that produced a personal_sign signature.

    Accepts a Signature, its 65 raw bytes, or its hex encoding.
    """
    if isinstance(signature, bytes):
        signature = Signature.from_bytes(signature)
    elif isinstance(signature, str):
        signature = Signature.from_hex(signature)
    return recover_message_signer(message, signature).to_address()
