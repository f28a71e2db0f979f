"""
Cryptographic primitives for the UTXO ledger.

This module provides:
- Hashing (BLAKE2b-256, the runtime's `H`)
- Key generation and management
- Digital signatures (sr25519: Schnorr over Ristretto255)

Design Notes:
-------------
Every output key in the ledger is a BLAKE2b-256 digest, so the store can use
those keys directly (identity hasher) without rehashing.

Signatures follow the Substrate convention:
- public key: 32 bytes
- signature: 64 bytes
- the message is the raw signing image (schnorrkel hashes it internally
  through a Merlin transcript with the "substrate" signing context)

sr25519 signing is randomized, so two signatures over the same message
differ; verification is deterministic, which is all consensus needs.
"""

import secrets
from dataclasses import dataclass

import sr25519
from Crypto.Hash import BLAKE2b


# =============================================================================
# Constants
# =============================================================================

HASH_SIZE = 32
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64
SEED_SIZE = 32


# =============================================================================
# Hashing
# =============================================================================


def blake2_256(data: bytes) -> bytes:
    """
    Compute unkeyed BLAKE2b with a 256-bit digest.

    Used for: output keys, genesis keys, reward keys.
    """
    h = BLAKE2b.new(digest_bits=256)
    h.update(data)
    return h.digest()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An sr25519 keypair.

    Attributes:
        seed: 32-byte mini secret the pair was expanded from
        public_key: 32-byte Ristretto255 public key
        secret_key: 64-byte expanded secret (key || nonce)
    """
    seed: bytes         # 32 bytes
    public_key: bytes   # 32 bytes
    secret_key: bytes   # 64 bytes

    @property
    def seed_hex(self) -> str:
        return self.seed.hex()

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()

    def sign(self, message: bytes) -> bytes:
        """Sign a message with this keypair."""
        return sign(message, self)


def keypair_from_seed(seed: bytes) -> KeyPair:
    """
    Expand a 32-byte seed into a keypair.

    Args:
        seed: 32-byte mini secret key

    Returns:
        KeyPair
    """
    if len(seed) != SEED_SIZE:
        raise ValueError(f"Seed must be {SEED_SIZE} bytes, got {len(seed)}")

    public_key, secret_key = sr25519.pair_from_seed(seed)
    return KeyPair(seed=seed, public_key=bytes(public_key), secret_key=bytes(secret_key))


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    return keypair_from_seed(secrets.token_bytes(SEED_SIZE))


# =============================================================================
# Digital Signatures (sr25519)
# =============================================================================


def sign(message: bytes, keypair: KeyPair) -> bytes:
    """
    Sign a message with sr25519.

    Args:
        message: Arbitrary message bytes (for the ledger: a signing image)
        keypair: Signer's keypair

    Returns:
        64-byte signature
    """
    signature = sr25519.sign((keypair.public_key, keypair.secret_key), message)
    return bytes(signature)


def verify(signature: bytes, message: bytes, public_key: bytes) -> bool:
    """
    Verify an sr25519 signature.

    Args:
        signature: 64-byte signature
        message: Message that was signed
        public_key: 32-byte public key

    Returns:
        True if signature is valid, False otherwise
    """
    if len(signature) != SIGNATURE_SIZE:
        return False
    if len(public_key) != PUBLIC_KEY_SIZE:
        return False

    try:
        return bool(sr25519.verify(signature, message, public_key))
    except (ValueError, TypeError):
        # Malformed point or non-canonical scalar
        return False


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def short_hex(data: bytes, length: int = 10) -> str:
    """Abbreviated hex for log lines."""
    return bytes_to_hex(data)[:length] + "..."
