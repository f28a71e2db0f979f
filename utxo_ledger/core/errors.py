"""
Dispatch errors for the UTXO module.

Every error here is terminal for the dispatch that raised it: the host rolls
back whatever the call wrote, so a rejected transaction leaves the UTXO set
and reward pool untouched.
"""

from enum import IntEnum
from typing import Optional

from utxo_ledger.crypto import bytes_to_hex


class ErrorKind(IntEnum):
    """Error classification, in validator evaluation order."""
    EMPTY = 1
    DUPLICATE_INPUT = 2
    DUPLICATE_OUTPUT = 3
    ZERO_OUTPUT_VALUE = 4
    MISSING_INPUT = 5
    INVALID_SIGNATURE = 6
    OVERFLOW = 7
    NEGATIVE_FEE = 8
    OUTPUT_ALREADY_EXISTS = 9
    INDEX_OVERFLOW = 10


class UtxoError(Exception):
    """Base class for all dispatch errors."""

    kind: ErrorKind

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.kind.name.lower())


class Empty(UtxoError):
    kind = ErrorKind.EMPTY

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Transaction has no {field}")


class DuplicateInput(UtxoError):
    kind = ErrorKind.DUPLICATE_INPUT

    def __init__(self, outpoint: bytes):
        self.outpoint = outpoint
        super().__init__(f"Outpoint {bytes_to_hex(outpoint)} referenced twice")


class DuplicateOutput(UtxoError):
    kind = ErrorKind.DUPLICATE_OUTPUT

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Output {index} duplicates an earlier output")


class ZeroOutputValue(UtxoError):
    kind = ErrorKind.ZERO_OUTPUT_VALUE

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Output {index} has zero value")


class MissingInput(UtxoError):
    kind = ErrorKind.MISSING_INPUT

    def __init__(self, outpoint: bytes):
        self.outpoint = outpoint
        super().__init__(f"Outpoint {bytes_to_hex(outpoint)} is not in the UTXO set")


class InvalidSignature(UtxoError):
    kind = ErrorKind.INVALID_SIGNATURE

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Input {index}: invalid signature")


class Overflow(UtxoError):
    kind = ErrorKind.OVERFLOW


class NegativeFee(UtxoError):
    kind = ErrorKind.NEGATIVE_FEE

    def __init__(self, input_sum: int, output_sum: int):
        self.input_sum = input_sum
        self.output_sum = output_sum
        super().__init__(f"Outputs exceed inputs: {output_sum} > {input_sum}")


class OutputAlreadyExists(UtxoError):
    kind = ErrorKind.OUTPUT_ALREADY_EXISTS

    def __init__(self, key: bytes):
        self.key = key
        super().__init__(f"Output key {bytes_to_hex(key)} already exists")


class IndexOverflow(UtxoError):
    kind = ErrorKind.INDEX_OVERFLOW
