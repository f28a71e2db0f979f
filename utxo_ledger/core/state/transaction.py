"""
Transaction - State transition in the UTXO ledger.

Conceptual Background:
---------------------
A Transaction consumes inputs (existing outputs) and creates new outputs.

The fundamental invariant is value conservation:
    sum(referenced outputs.value) = sum(outputs.value) + fee

Each input references one unspent output by its 32-byte key (the outpoint)
and carries a 64-byte sr25519 signature (the sigscript) made by the owner of
that output.

Output Keys:
-----------
New outputs are keyed deterministically from the transaction that creates
them, so every replica derives the same keys:

    key = H(encode(tx) || u64_le(index))

Outputs seeded at genesis use `H(encode(output))`; block rewards use
`H(encode(output) || u64_le(block_number))`.

Signing Image:
-------------
Signatures cannot cover themselves, so inputs sign the canonical encoding of
the transaction with every sigscript replaced by 64 zero bytes. One image is
shared by all inputs.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from utxo_ledger.core.codec import (
    Reader,
    U128_MAX,
    encode_compact,
    encode_u64,
    encode_u128,
)
from utxo_ledger.crypto import (
    HASH_SIZE,
    PUBLIC_KEY_SIZE,
    SIGNATURE_SIZE,
    KeyPair,
    blake2_256,
    bytes_to_hex,
    hex_to_bytes,
    sign,
)


EMPTY_SIGSCRIPT = bytes(SIGNATURE_SIZE)


def _check_bytes(value: Any, name: str, size: int) -> None:
    if not isinstance(value, bytes):
        raise ValueError(f"{name} must be bytes, got {type(value).__name__}")
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(value)}")


# =============================================================================
# Input Reference
# =============================================================================


@dataclass(frozen=True, order=True)
class TransactionInput:
    """
    A transaction input - reference to an output being spent.

    Attributes:
        outpoint: Key of the referenced output in the UTXO set
        sigscript: Signature over the signing image by the output's owner
    """
    outpoint: bytes                          # 32 bytes
    sigscript: bytes = EMPTY_SIGSCRIPT       # 64 bytes

    def __post_init__(self):
        _check_bytes(self.outpoint, "outpoint", HASH_SIZE)
        _check_bytes(self.sigscript, "sigscript", SIGNATURE_SIZE)

    def unsigned(self) -> "TransactionInput":
        """Copy of this input with the sigscript zeroed."""
        return replace(self, sigscript=EMPTY_SIGSCRIPT)

    def to_bytes(self) -> bytes:
        """Serialize input: outpoint(32) || sigscript(64)."""
        return self.outpoint + self.sigscript

    @classmethod
    def read_from(cls, reader: Reader) -> "TransactionInput":
        return cls(outpoint=reader.read(HASH_SIZE), sigscript=reader.read(SIGNATURE_SIZE))

    @classmethod
    def from_bytes(cls, data: bytes) -> "TransactionInput":
        """Deserialize input."""
        reader = Reader(data)
        inp = cls.read_from(reader)
        reader.finish()
        return inp

    def to_dict(self) -> Dict[str, str]:
        return {
            "outpoint": bytes_to_hex(self.outpoint),
            "sigscript": bytes_to_hex(self.sigscript),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "TransactionInput":
        sigscript = data.get("sigscript")
        return cls(
            outpoint=hex_to_bytes(data["outpoint"]),
            sigscript=hex_to_bytes(sigscript) if sigscript else EMPTY_SIGSCRIPT,
        )


# =============================================================================
# Output
# =============================================================================


@dataclass(frozen=True, order=True)
class TransactionOutput:
    """
    A spendable coin.

    Ordering is total by (value, pubkey), which is also the field order.

    Attributes:
        value: Amount (unsigned 128-bit)
        pubkey: 32-byte sr25519 public key of the owner
    """
    value: int
    pubkey: bytes    # 32 bytes

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValueError(f"value must be int, got {type(self.value).__name__}")
        if not (0 <= self.value <= U128_MAX):
            raise ValueError(f"value must fit in u128, got {self.value}")
        _check_bytes(self.pubkey, "pubkey", PUBLIC_KEY_SIZE)

    def to_bytes(self) -> bytes:
        """Serialize output: u128_le(value) || pubkey(32)."""
        return encode_u128(self.value) + self.pubkey

    @classmethod
    def read_from(cls, reader: Reader) -> "TransactionOutput":
        return cls(value=reader.read_u128(), pubkey=reader.read(PUBLIC_KEY_SIZE))

    @classmethod
    def from_bytes(cls, data: bytes) -> "TransactionOutput":
        """Deserialize output."""
        reader = Reader(data)
        out = cls.read_from(reader)
        reader.finish()
        return out

    # =========================================================================
    # Key Derivation
    # =========================================================================

    def genesis_key(self) -> bytes:
        """Key of this output when seeded at genesis: H(encode(output))."""
        return blake2_256(self.to_bytes())

    def reward_key(self, block_number: int) -> bytes:
        """Key of this output when minted as a reward in `block_number`."""
        return blake2_256(self.to_bytes() + encode_u64(block_number))

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "pubkey": bytes_to_hex(self.pubkey)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionOutput":
        return cls(value=int(data["value"]), pubkey=hex_to_bytes(data["pubkey"]))

    def __repr__(self) -> str:
        return f"TransactionOutput(value={self.value}, pubkey={bytes_to_hex(self.pubkey)[:10]}...)"


# =============================================================================
# Transaction
# =============================================================================


@dataclass(frozen=True)
class Transaction:
    """
    An atomic unit that consumes inputs and creates outputs.

    Instances are immutable; signing returns a new transaction.

    Attributes:
        inputs: Outputs being spent, in order
        outputs: Outputs being created, in order
    """
    inputs: Tuple[TransactionInput, ...] = field(default_factory=tuple)
    outputs: Tuple[TransactionOutput, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_bytes(self) -> bytes:
        """
        Canonical encoding.

        Format: compact(len(inputs)) || inputs || compact(len(outputs)) || outputs
        """
        parts = [encode_compact(len(self.inputs))]
        parts.extend(inp.to_bytes() for inp in self.inputs)
        parts.append(encode_compact(len(self.outputs)))
        parts.extend(out.to_bytes() for out in self.outputs)
        return b"".join(parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Transaction":
        """Decode a transaction; the whole buffer must be consumed."""
        reader = Reader(data)

        num_inputs = reader.read_compact()
        inputs = [TransactionInput.read_from(reader) for _ in range(num_inputs)]

        num_outputs = reader.read_compact()
        outputs = [TransactionOutput.read_from(reader) for _ in range(num_outputs)]

        reader.finish()
        return cls(inputs=inputs, outputs=outputs)

    def to_hex(self) -> str:
        return bytes_to_hex(self.to_bytes())

    @classmethod
    def from_hex(cls, hex_str: str) -> "Transaction":
        return cls.from_bytes(hex_to_bytes(hex_str))

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "inputs": [inp.to_dict() for inp in self.inputs],
            "outputs": [out.to_dict() for out in self.outputs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            inputs=[TransactionInput.from_dict(i) for i in data.get("inputs", [])],
            outputs=[TransactionOutput.from_dict(o) for o in data.get("outputs", [])],
        )

    # =========================================================================
    # Hashing
    # =========================================================================

    @property
    def tx_hash(self) -> bytes:
        """H(encode(tx)); identifies the transaction in logs and events."""
        return blake2_256(self.to_bytes())

    def signing_image(self) -> bytes:
        """Canonical encoding with every sigscript zeroed."""
        unsigned = Transaction(
            inputs=[inp.unsigned() for inp in self.inputs],
            outputs=self.outputs,
        )
        return unsigned.to_bytes()

    def output_key(self, index: int) -> bytes:
        """Key of the output at `index` once this transaction is applied."""
        return derive_output_key(self.to_bytes(), index)

    def output_keys(self) -> List[bytes]:
        encoded = self.to_bytes()
        return [derive_output_key(encoded, i) for i in range(len(self.outputs))]

    # =========================================================================
    # Signing
    # =========================================================================

    def sign_input(self, input_index: int, keypair: KeyPair) -> "Transaction":
        """
        Sign a specific input.

        Args:
            input_index: Which input to sign
            keypair: Keypair of the referenced output's owner

        Returns:
            New Transaction with that input's sigscript filled in
        """
        if input_index >= len(self.inputs):
            raise IndexError(f"Input index {input_index} out of range")

        signature = sign(self.signing_image(), keypair)
        inputs = list(self.inputs)
        inputs[input_index] = replace(inputs[input_index], sigscript=signature)
        return replace(self, inputs=tuple(inputs))

    def sign_inputs(self, keypairs: Sequence[KeyPair]) -> "Transaction":
        """Sign every input; `keypairs[i]` signs input i."""
        if len(keypairs) != len(self.inputs):
            raise ValueError(
                f"Need one keypair per input: {len(keypairs)} != {len(self.inputs)}"
            )

        image = self.signing_image()
        inputs = tuple(
            replace(inp, sigscript=sign(image, kp))
            for inp, kp in zip(self.inputs, keypairs)
        )
        return replace(self, inputs=inputs)

    # =========================================================================
    # Utility
    # =========================================================================

    def total_output_value(self) -> int:
        """Sum of all output values (unchecked)."""
        return sum(out.value for out in self.outputs)

    def __repr__(self) -> str:
        return (
            f"Transaction(id={bytes_to_hex(self.tx_hash)[:10]}..., "
            f"inputs={len(self.inputs)}, outputs={len(self.outputs)})"
        )


def derive_output_key(encoded_tx: bytes, index: int) -> bytes:
    """H(encoded_tx || u64_le(index))."""
    return blake2_256(encoded_tx + encode_u64(index))


# =============================================================================
# Factory Functions
# =============================================================================


def create_transfer(
    inputs: Iterable[Tuple[bytes, KeyPair]],   # List of (outpoint, owner keypair)
    recipients: Iterable[Tuple[bytes, int]],   # List of (pubkey, value)
) -> Transaction:
    """
    Create a signed transfer transaction.

    Args:
        inputs: (outpoint, keypair) pairs; each keypair must own its outpoint
        recipients: (pubkey, value) pairs

    Returns:
        Signed Transaction

    Note: The fee is implicit, sum(inputs) - sum(recipients).
    """
    inputs = list(inputs)
    tx = Transaction(
        inputs=[TransactionInput(outpoint=outpoint) for outpoint, _ in inputs],
        outputs=[TransactionOutput(value=value, pubkey=pubkey) for pubkey, value in recipients],
    )
    return tx.sign_inputs([kp for _, kp in inputs])
