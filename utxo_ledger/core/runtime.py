"""
LocalRuntime - a minimal host for the UTXO module.

The UTXO module expects a host to drive it: supply state, an authority set,
a block number and an event bus, then call `spend` for each transaction and
`on_finalize` once per block. This module is that host for tests, the CLI
and single-node experiments:

- Owns the key/value state (in memory or SQLite)
- Dispatches calls through a function table
- Turns dispatch errors into per-transaction results
- Numbers blocks and finalizes each one

Block numbers are stored in the host's own cell so a persistent state
resumes where it left off.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from utxo_ledger.core.config import LedgerConfig
from utxo_ledger.core.codec import U64_MAX, encode_u64
from utxo_ledger.core.errors import UtxoError
from utxo_ledger.core.events import Event, EventLog
from utxo_ledger.core.state.ledger import UtxoModule
from utxo_ledger.core.state.store import InMemoryState, StateBackend
from utxo_ledger.core.state.transaction import Transaction
from utxo_ledger.crypto import bytes_to_hex
from utxo_ledger.utils.logger import get_logger

logger = get_logger("runtime")


BLOCK_NUMBER_KEY = b"Host:BlockNumber"
GENESIS_DONE_KEY = b"Host:GenesisDone"


# =============================================================================
# Results
# =============================================================================


@dataclass
class ApplyResult:
    """Outcome of one dispatched transaction."""
    tx_hash: bytes
    success: bool
    fee: int = 0
    error: Optional[UtxoError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": bytes_to_hex(self.tx_hash),
            "success": self.success,
            "fee": self.fee,
            "error": self.error.kind.name if self.error else None,
        }


@dataclass
class BlockReceipt:
    """Everything that happened in one block."""
    number: int
    results: List[ApplyResult] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    reward_total: int = 0

    @property
    def applied(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def rejected(self) -> int:
        return sum(1 for r in self.results if not r.success)


# =============================================================================
# Runtime
# =============================================================================


class LocalRuntime:
    """
    Single-node host around a UtxoModule.

    Attributes:
        state: Key/value state shared with the module
        authority_set: Authorities paid at each finalization
        events: Every event the module deposited
        module: The UTXO module
    """

    def __init__(
        self,
        state: Optional[StateBackend] = None,
        authorities: Optional[Sequence[bytes]] = None,
        longevity: int = U64_MAX,
    ):
        self.state = state if state is not None else InMemoryState()
        self.authority_set: List[bytes] = list(authorities or [])
        self.events = EventLog()

        self.module = UtxoModule(
            self.state,
            authorities=lambda: self.authority_set,
            event_sink=self.events,
            block_number=lambda: self.block_number,
            longevity=longevity,
        )

        # Dispatchable calls
        self.calls: Dict[str, Callable[..., Any]] = {
            "spend": self.module.spend,
        }

    @classmethod
    def from_config(cls, config: LedgerConfig, state: Optional[StateBackend] = None) -> "LocalRuntime":
        """Build a runtime and seed genesis unless the state already holds it."""
        runtime = cls(state=state, authorities=config.authority_keys(), longevity=config.longevity)
        if not runtime.genesis_done:
            runtime.genesis(config.genesis_outputs())
        return runtime

    # =========================================================================
    # Host Cells
    # =========================================================================

    @property
    def block_number(self) -> int:
        raw = self.state.get(BLOCK_NUMBER_KEY)
        return int.from_bytes(raw, byteorder="little") if raw else 0

    @block_number.setter
    def block_number(self, number: int) -> None:
        self.state.put(BLOCK_NUMBER_KEY, encode_u64(number))

    @property
    def genesis_done(self) -> bool:
        return self.state.contains(GENESIS_DONE_KEY)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def genesis(self, outputs) -> List[bytes]:
        """Seed genesis once; block 0."""
        if self.genesis_done:
            raise RuntimeError("Genesis already initialized")
        with self.state.transactional():
            keys = self.module.genesis_init(outputs)
            self.state.put(GENESIS_DONE_KEY, b"\x01")
            self.block_number = 0
        return keys

    def set_authorities(self, authorities: Iterable[bytes]) -> None:
        self.authority_set = list(authorities)

    def dispatch(self, call: str, origin: Any, *args) -> Any:
        """Route a call by name through the function table."""
        try:
            handler = self.calls[call]
        except KeyError:
            raise ValueError(f"Unknown call: {call}") from None
        return handler(origin, *args)

    def apply_transaction(self, tx: Transaction, origin: Any = None) -> ApplyResult:
        """
        Dispatch `spend` and report the outcome.

        Rejections are results, not exceptions: one bad transaction does
        not abort the block.
        """
        try:
            fee = self.dispatch("spend", origin, tx)
        except UtxoError as e:
            return ApplyResult(tx_hash=tx.tx_hash, success=False, error=e)
        return ApplyResult(tx_hash=tx.tx_hash, success=True, fee=fee)

    def execute_block(self, transactions: Iterable[Transaction]) -> BlockReceipt:
        """
        Execute one block: apply transactions in order, then finalize.

        Args:
            transactions: Ordered transactions for the block

        Returns:
            BlockReceipt with per-transaction results and the block's events
        """
        number = self.block_number + 1
        self.block_number = number
        first_event = len(self.events)

        receipt = BlockReceipt(number=number)
        for tx in transactions:
            receipt.results.append(self.apply_transaction(tx))

        self.module.on_finalize(number)

        receipt.events = self.events.events[first_event:]
        receipt.reward_total = self.module.reward_total

        logger.info(
            f"Block {number}: {receipt.applied} applied, {receipt.rejected} rejected, "
            f"reward_total={receipt.reward_total}"
        )
        return receipt

    def stats(self) -> dict:
        """Get runtime statistics."""
        return {
            "block_number": self.block_number,
            "authorities": len(self.authority_set),
            "events": len(self.events),
            "ledger": self.module.stats(),
        }
