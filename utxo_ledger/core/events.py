"""
Events deposited by the UTXO module.

A tagged union: every event carries an `EventType` tag so the host's event
bus can route without isinstance checks.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from utxo_ledger.crypto import bytes_to_hex

if TYPE_CHECKING:
    from utxo_ledger.core.state.transaction import Transaction


class EventType(IntEnum):
    TRANSACTION_APPLIED = 1
    REWARD_PAID = 2
    REWARD_WASTED = 3


@dataclass(frozen=True)
class TransactionApplied:
    """Transaction was executed successfully."""
    transaction: "Transaction"
    event_type: EventType = EventType.TRANSACTION_APPLIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type.name,
            "tx_hash": bytes_to_hex(self.transaction.tx_hash),
            "transaction": self.transaction.to_dict(),
        }


@dataclass(frozen=True)
class RewardPaid:
    """An authority received its share of the block's fees."""
    pubkey: bytes
    value: int
    event_type: EventType = EventType.REWARD_PAID

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type.name,
            "pubkey": bytes_to_hex(self.pubkey),
            "value": self.value,
        }


@dataclass(frozen=True)
class RewardWasted:
    """
    An authority's share was forfeited.

    `pubkey` is None when the authority entry itself was unusable.
    """
    pubkey: Optional[bytes]
    event_type: EventType = EventType.REWARD_WASTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type.name,
            "pubkey": bytes_to_hex(self.pubkey) if self.pubkey is not None else None,
        }


Event = Union[TransactionApplied, RewardPaid, RewardWasted]
EventSink = Callable[[Event], None]


class EventLog:
    """
    Event sink that records everything it is given.

    Used by the local runtime and tests; a real host supplies its own bus.
    """

    def __init__(self):
        self.events: List[Event] = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)
