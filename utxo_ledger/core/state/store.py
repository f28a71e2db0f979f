"""
UTXO store adapter over host-provided state.

Conceptual Background:
---------------------
The module never owns its storage. The host hands it a byte-keyed key/value
state (`StateBackend`) and the module lays two named cells over it:

    UtxoStore    b"Utxo:UtxoStore:" || outpoint  ->  encode(output)
    RewardTotal  b"Utxo:RewardTotal"             ->  u128_le(pool)

Outpoints are already uniform BLAKE2b-256 digests, so they are used as
storage keys as-is (identity hasher).

Atomicity:
---------
`StateBackend.transactional()` scopes a unit of work: writes made inside the
block become visible to later reads immediately, are committed when the block
exits normally, and are discarded when it raises. Blocks nest.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from utxo_ledger.core.codec import U128_MAX, encode_u128
from utxo_ledger.core.state.transaction import TransactionOutput
from utxo_ledger.crypto import HASH_SIZE


UTXO_PREFIX = b"Utxo:UtxoStore:"
REWARD_TOTAL_KEY = b"Utxo:RewardTotal"


# =============================================================================
# Host State Contract
# =============================================================================


class StateBackend(ABC):
    """Byte-keyed transactional key/value state supplied by the host."""

    @abstractmethod
    def get(self, key: bytes) -> Optional[bytes]:
        ...

    @abstractmethod
    def put(self, key: bytes, value: bytes) -> None:
        ...

    @abstractmethod
    def delete(self, key: bytes) -> None:
        ...

    @abstractmethod
    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """Yield (key, value) for every live key starting with `prefix`, sorted by key."""

    @abstractmethod
    def transactional(self):
        """Context manager: commit on success, roll back on exception."""

    def contains(self, key: bytes) -> bool:
        return self.get(key) is not None


class InMemoryState(StateBackend):
    """
    Dict-backed state with an overlay stack for nested transactions.

    Each open `transactional()` block pushes an overlay mapping
    key -> value (None marks a deletion). Reads walk the overlays top-down
    before falling through to the committed dict.
    """

    def __init__(self, initial: Optional[Dict[bytes, bytes]] = None):
        self._committed: Dict[bytes, bytes] = dict(initial or {})
        self._overlays: List[Dict[bytes, Optional[bytes]]] = []

    def get(self, key: bytes) -> Optional[bytes]:
        for overlay in reversed(self._overlays):
            if key in overlay:
                return overlay[key]
        return self._committed.get(key)

    def put(self, key: bytes, value: bytes) -> None:
        if self._overlays:
            self._overlays[-1][key] = value
        else:
            self._committed[key] = value

    def delete(self, key: bytes) -> None:
        if self._overlays:
            self._overlays[-1][key] = None
        else:
            self._committed.pop(key, None)

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        merged: Dict[bytes, Optional[bytes]] = {
            k: v for k, v in self._committed.items() if k.startswith(prefix)
        }
        for overlay in self._overlays:
            for k, v in overlay.items():
                if k.startswith(prefix):
                    merged[k] = v
        for key in sorted(merged):
            value = merged[key]
            if value is not None:
                yield key, value

    @contextmanager
    def transactional(self):
        self._overlays.append({})
        try:
            yield self
        except BaseException:
            self._overlays.pop()
            raise
        layer = self._overlays.pop()
        for key, value in layer.items():
            if value is None:
                self.delete(key)
            else:
                self.put(key, value)

    @property
    def depth(self) -> int:
        """Number of open transactional blocks."""
        return len(self._overlays)

    def snapshot(self) -> Dict[bytes, bytes]:
        """Copy of the committed state."""
        return dict(self._committed)


# =============================================================================
# UTXO Store Adapter
# =============================================================================


class UtxoStore:
    """
    Typed view of the module's two storage cells.

    Attributes:
        state: Host state the cells live in
    """

    def __init__(self, state: StateBackend):
        self.state = state

    @staticmethod
    def storage_key(outpoint: bytes) -> bytes:
        if len(outpoint) != HASH_SIZE:
            raise ValueError(f"outpoint must be {HASH_SIZE} bytes, got {len(outpoint)}")
        return UTXO_PREFIX + outpoint

    # =========================================================================
    # UtxoStore: H256 -> TransactionOutput
    # =========================================================================

    def get(self, outpoint: bytes) -> Optional[TransactionOutput]:
        raw = self.state.get(self.storage_key(outpoint))
        if raw is None:
            return None
        return TransactionOutput.from_bytes(raw)

    def insert(self, outpoint: bytes, output: TransactionOutput) -> None:
        self.state.put(self.storage_key(outpoint), output.to_bytes())

    def remove(self, outpoint: bytes) -> None:
        self.state.delete(self.storage_key(outpoint))

    def contains(self, outpoint: bytes) -> bool:
        return self.state.contains(self.storage_key(outpoint))

    def items(self) -> Iterator[Tuple[bytes, TransactionOutput]]:
        """Every (outpoint, output), ordered by outpoint."""
        for key, raw in self.state.iter_prefix(UTXO_PREFIX):
            yield key[len(UTXO_PREFIX):], TransactionOutput.from_bytes(raw)

    def __contains__(self, outpoint: bytes) -> bool:
        return self.contains(outpoint)

    def __len__(self) -> int:
        return sum(1 for _ in self.state.iter_prefix(UTXO_PREFIX))

    # =========================================================================
    # RewardTotal: u128
    # =========================================================================

    @property
    def reward_total(self) -> int:
        raw = self.state.get(REWARD_TOTAL_KEY)
        if raw is None:
            return 0
        return int.from_bytes(raw, byteorder="little")

    @reward_total.setter
    def reward_total(self, value: int) -> None:
        if not (0 <= value <= U128_MAX):
            raise ValueError(f"reward total must fit in u128, got {value}")
        self.state.put(REWARD_TOTAL_KEY, encode_u128(value))

    def total_value(self) -> int:
        """Sum of all unspent output values."""
        return sum(out.value for _, out in self.items())
