"""
Canonical binary encoding for ledger types.

Conceptual Background:
---------------------
Every replica must derive byte-identical keys from the same transaction, so
the encoding has exactly one valid form per value:

- Fixed-width integers are little-endian (u64 = 8 bytes, u128 = 16 bytes)
- Fixed-size identifiers (H256, H512) are raw bytes
- Sequences carry a compact unsigned length prefix

Compact Integers:
----------------
The length prefix uses the SCALE compact scheme. The two low bits of the
first byte select the mode:

    0b00  single byte      n < 2**6      n << 2
    0b01  two bytes  (LE)  n < 2**14     (n << 2) | 1
    0b10  four bytes (LE)  n < 2**30     (n << 2) | 2
    0b11  big integer      n >= 2**30    prefix ((len - 4) << 2) | 3, then len LE bytes

Decoding rejects any value not written in its smallest mode, which keeps the
wire format byte-stable.
"""

from typing import Tuple


# =============================================================================
# Constants
# =============================================================================

U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1

# Largest value the big-integer mode can carry (67 bytes)
COMPACT_MAX = 2**536 - 1


class CodecError(ValueError):
    """Raised when bytes do not decode to a canonical value."""


# =============================================================================
# Fixed-width Integers
# =============================================================================


def encode_u64(value: int) -> bytes:
    """Encode an unsigned 64-bit integer, little-endian."""
    if not (0 <= value <= U64_MAX):
        raise ValueError(f"u64 out of range: {value}")
    return value.to_bytes(8, byteorder="little")


def encode_u128(value: int) -> bytes:
    """Encode an unsigned 128-bit integer, little-endian."""
    if not (0 <= value <= U128_MAX):
        raise ValueError(f"u128 out of range: {value}")
    return value.to_bytes(16, byteorder="little")


# =============================================================================
# Compact Integers
# =============================================================================


def encode_compact(value: int) -> bytes:
    """
    Encode an unsigned integer in SCALE compact form.

    Args:
        value: Non-negative integer

    Returns:
        1, 2, 4 or 5-68 bytes
    """
    if value < 0 or value > COMPACT_MAX:
        raise ValueError(f"compact value out of range: {value}")

    if value < 2**6:
        return bytes([value << 2])
    if value < 2**14:
        return ((value << 2) | 0b01).to_bytes(2, byteorder="little")
    if value < 2**30:
        return ((value << 2) | 0b10).to_bytes(4, byteorder="little")

    length = max(4, (value.bit_length() + 7) // 8)
    return bytes([((length - 4) << 2) | 0b11]) + value.to_bytes(length, byteorder="little")


# =============================================================================
# Reader
# =============================================================================


class Reader:
    """
    Cursor over an encoded buffer.

    Every read checks bounds; `finish()` rejects trailing bytes.
    """

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read(self, size: int) -> bytes:
        if size > self.remaining:
            raise CodecError(
                f"Unexpected end of input: need {size} bytes at offset "
                f"{self.offset}, have {self.remaining}"
            )
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def read_u64(self) -> int:
        return int.from_bytes(self.read(8), byteorder="little")

    def read_u128(self) -> int:
        return int.from_bytes(self.read(16), byteorder="little")

    def read_compact(self) -> int:
        first = self.read(1)[0]
        mode = first & 0b11

        if mode == 0b00:
            return first >> 2

        if mode == 0b01:
            value = int.from_bytes(bytes([first]) + self.read(1), byteorder="little") >> 2
            if value < 2**6:
                raise CodecError(f"Non-canonical compact encoding of {value}")
            return value

        if mode == 0b10:
            value = int.from_bytes(bytes([first]) + self.read(3), byteorder="little") >> 2
            if value < 2**14:
                raise CodecError(f"Non-canonical compact encoding of {value}")
            return value

        length = (first >> 2) + 4
        raw = self.read(length)
        value = int.from_bytes(raw, byteorder="little")
        if value < 2**30 or raw[-1] == 0:
            raise CodecError(f"Non-canonical compact encoding of {value}")
        return value

    def finish(self) -> None:
        if self.remaining:
            raise CodecError(f"{self.remaining} trailing bytes after value")


def decode_compact(data: bytes) -> Tuple[int, int]:
    """
    Decode a compact integer from the start of `data`.

    Returns:
        (value, bytes_consumed)
    """
    reader = Reader(data)
    value = reader.read_compact()
    return value, reader.offset
