"""
UTXO Ledger

A UTXO runtime module for embedding in a blockchain host:
- Canonical transaction encoding and output key derivation
- Signature-checked transaction validation (sr25519, BLAKE2b-256)
- Atomic state transitions over host-provided key/value state
- Per-block fee pool dispersed to authorities at finalization
"""

__version__ = "0.1.0"
