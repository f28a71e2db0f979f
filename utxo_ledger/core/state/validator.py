"""
Validator - admissibility of a transaction against a UTXO view.

Conceptual Background:
---------------------
Validation is a pure predicate: it reads the UTXO view and never writes.
The rules run in a fixed order so that every replica reports the same error
for the same invalid transaction:

1. Non-empty            inputs and outputs both non-empty
2. No duplicate inputs  every outpoint referenced once
3. No duplicate outputs encoded outputs pairwise distinct
4. Output positivity    every output value >= 1
5. Input existence      every outpoint resolves in the view
6. Signatures           sr25519 over the signing image, per input
7. Arithmetic           input/output sums fit in u128
8. Conservation         input_sum >= output_sum
9. Fresh outputs        no derived output key is already present

On success the fee is `input_sum - output_sum`.

Pool Validity:
-------------
A transaction pool sees transactions whose inputs are created by other
still-pending transactions. `pool_validity` reports such transactions as
valid-but-waiting instead of rejecting them: the missing outpoints become
`requires` tags and the keys the transaction will create become `provides`
tags. Ordering and eviction on top of these tags are the pool's business.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Tuple

from utxo_ledger.core.codec import U64_MAX, U128_MAX
from utxo_ledger.core.errors import (
    DuplicateInput,
    DuplicateOutput,
    Empty,
    InvalidSignature,
    MissingInput,
    NegativeFee,
    OutputAlreadyExists,
    Overflow,
    ZeroOutputValue,
)
from utxo_ledger.core.state.transaction import Transaction, TransactionOutput
from utxo_ledger.crypto import verify
from utxo_ledger.utils.logger import get_logger

logger = get_logger("validator")


Verifier = Callable[[bytes, bytes, bytes], bool]   # (signature, message, pubkey)


class UtxoView(Protocol):
    """Read-only lookup; a UtxoStore or a plain dict both qualify."""

    def get(self, outpoint: bytes) -> Optional[TransactionOutput]:
        ...


# =============================================================================
# Checked Arithmetic
# =============================================================================


def checked_add_u128(a: int, b: int) -> int:
    """a + b, raising Overflow when the result leaves u128."""
    total = a + b
    if total > U128_MAX:
        raise Overflow(f"u128 overflow: {a} + {b}")
    return total


def checked_sum_u128(values) -> int:
    total = 0
    for value in values:
        total = checked_add_u128(total, value)
    return total


# =============================================================================
# Structural Rules (1-4)
# =============================================================================


def check_structure(tx: Transaction) -> None:
    """
    Rules that need no state.

    Raises:
        Empty, DuplicateInput, DuplicateOutput, ZeroOutputValue
    """
    if not tx.inputs:
        raise Empty("inputs")
    if not tx.outputs:
        raise Empty("outputs")

    seen_outpoints = set()
    for inp in tx.inputs:
        if inp.outpoint in seen_outpoints:
            raise DuplicateInput(inp.outpoint)
        seen_outpoints.add(inp.outpoint)

    seen_outputs = set()
    for i, out in enumerate(tx.outputs):
        encoded = out.to_bytes()
        if encoded in seen_outputs:
            raise DuplicateOutput(i)
        seen_outputs.add(encoded)

    for i, out in enumerate(tx.outputs):
        if out.value < 1:
            raise ZeroOutputValue(i)


def check_fresh_outputs(tx: Transaction, view: UtxoView) -> List[bytes]:
    """Rule 9; returns the derived output keys."""
    keys = tx.output_keys()
    for key in keys:
        if view.get(key) is not None:
            raise OutputAlreadyExists(key)
    return keys


# =============================================================================
# Full Validation
# =============================================================================


def validate_transaction(
    tx: Transaction,
    view: UtxoView,
    verifier: Verifier = verify,
) -> int:
    """
    Validate a transaction against current state.

    Args:
        tx: Transaction to validate
        view: UTXO lookup (read only)
        verifier: Signature check, sr25519 by default

    Returns:
        The transaction's fee

    Raises:
        UtxoError subclass for the first rule that fails
    """
    check_structure(tx)

    # Resolve inputs
    referenced: List[TransactionOutput] = []
    for inp in tx.inputs:
        utxo = view.get(inp.outpoint)
        if utxo is None:
            raise MissingInput(inp.outpoint)
        referenced.append(utxo)

    # Every input signs the same image
    image = tx.signing_image()
    for i, (inp, utxo) in enumerate(zip(tx.inputs, referenced)):
        if not verifier(inp.sigscript, image, utxo.pubkey):
            raise InvalidSignature(i)

    input_sum = checked_sum_u128(utxo.value for utxo in referenced)
    output_sum = checked_sum_u128(out.value for out in tx.outputs)

    if input_sum < output_sum:
        raise NegativeFee(input_sum, output_sum)

    check_fresh_outputs(tx, view)

    return input_sum - output_sum


# =============================================================================
# Pool Validity
# =============================================================================


@dataclass
class ValidTransaction:
    """
    What a transaction pool needs to know about a transaction.

    Attributes:
        requires: Outpoints that must exist before this can apply
        provides: Output keys this transaction creates
        priority: Fee when every input resolves, else 0
        longevity: Blocks the transaction stays valid for
        propagate: Whether peers should gossip it
    """
    requires: List[bytes] = field(default_factory=list)
    provides: List[bytes] = field(default_factory=list)
    priority: int = 0
    longevity: int = U64_MAX
    propagate: bool = True

    @property
    def is_ready(self) -> bool:
        return not self.requires


def pool_validity(
    tx: Transaction,
    view: UtxoView,
    verifier: Verifier = verify,
    longevity: int = U64_MAX,
) -> ValidTransaction:
    """
    Tag a transaction for a pool.

    Same rules as `validate_transaction`, except that missing inputs are
    reported as `requires` tags. Signatures are checked for the inputs that
    resolve; overflow and conservation only once nothing is missing.

    Raises:
        UtxoError subclass for rules that fail regardless of pending parents
    """
    check_structure(tx)

    image = tx.signing_image()
    missing: List[bytes] = []
    resolved: List[Tuple[int, TransactionOutput]] = []
    for i, inp in enumerate(tx.inputs):
        utxo = view.get(inp.outpoint)
        if utxo is None:
            missing.append(inp.outpoint)
            continue
        if not verifier(inp.sigscript, image, utxo.pubkey):
            raise InvalidSignature(i)
        resolved.append((i, utxo))

    provides = check_fresh_outputs(tx, view)

    priority = 0
    if not missing:
        input_sum = checked_sum_u128(utxo.value for _, utxo in resolved)
        output_sum = checked_sum_u128(out.value for out in tx.outputs)
        if input_sum < output_sum:
            raise NegativeFee(input_sum, output_sum)
        priority = input_sum - output_sum
    else:
        logger.debug(f"Transaction waits on {len(missing)} missing input(s)")

    return ValidTransaction(
        requires=missing,
        provides=provides,
        priority=priority,
        longevity=longevity,
    )
