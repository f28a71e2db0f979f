"""
Ledger - the UTXO runtime module.

Conceptual Background:
---------------------
The module is embedded in a host runtime and exposes three entry points:

1. **genesis_init(outputs)**: seed the UTXO set once, at chain bootstrap
2. **spend(origin, tx)**: validate and apply one transaction
3. **on_finalize(block_number)**: pay the block's fees out to authorities

Transaction Processing:
----------------------
1. Validate against the current UTXO set (pure, see validator.py)
2. Credit the fee to the reward pool (checked u128)
3. Remove every spent outpoint
4. Insert each output at H(encode(tx) || u64_le(index))
5. Deposit TransactionApplied

All of it runs inside one host transaction, so a failure at any step leaves
storage exactly as it was. Outputs created by one spend are immediately
spendable by the next spend in the same block.

Reward Dispersal:
----------------
At block end the pool is split evenly across the current authorities:

    share     = pool // len(authorities)
    remainder = pool - share * len(authorities)   (carried to next block)

Each authority gets a fresh output keyed H(encode(output) || u64_le(block)).
If that key is already taken the authority's share is forfeited and a
RewardWasted event records it. With no authorities, or a pool too small to
give everyone at least 1, the whole pool carries forward untouched.

Pool lifecycle per block:

    EMPTY --fee--> ACCRUING --on_finalize--> DISPERSING --share > 0--> EMPTY
                                                       --share == 0 / no authorities--> CARRY
"""

from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from utxo_ledger.core.codec import U64_MAX, encode_u64
from utxo_ledger.core.errors import IndexOverflow, UtxoError
from utxo_ledger.core.events import (
    Event,
    EventSink,
    RewardPaid,
    RewardWasted,
    TransactionApplied,
)
from utxo_ledger.core.state.store import StateBackend, UtxoStore
from utxo_ledger.core.state.transaction import (
    Transaction,
    TransactionOutput,
    derive_output_key,
)
from utxo_ledger.core.state.validator import (
    ValidTransaction,
    Verifier,
    checked_add_u128,
    pool_validity,
    validate_transaction,
)
from utxo_ledger.crypto import PUBLIC_KEY_SIZE, bytes_to_hex, short_hex, verify
from utxo_ledger.utils.logger import get_logger

logger = get_logger("ledger")


AuthorityProvider = Callable[[], Sequence[bytes]]
BlockNumberSource = Callable[[], int]


class RewardPoolState(Enum):
    EMPTY = "empty"
    ACCRUING = "accruing"
    DISPERSING = "dispersing"
    CARRY = "carry"


class UtxoModule:
    """
    UTXO ledger with a per-block fee pool.

    Attributes:
        state: Host key/value state
        store: Typed view of UtxoStore / RewardTotal over `state`
        authorities: Returns the current authority public keys
        event_sink: Receives deposited events
        verifier: Signature check (sr25519)
        pool_state: Where the reward pool is in its per-block lifecycle
    """

    def __init__(
        self,
        state: StateBackend,
        authorities: AuthorityProvider,
        event_sink: EventSink,
        block_number: Optional[BlockNumberSource] = None,
        verifier: Verifier = verify,
        longevity: int = U64_MAX,
    ):
        self.state = state
        self.store = UtxoStore(state)
        self.authorities = authorities
        self.event_sink = event_sink
        self.block_number = block_number
        self.verifier = verifier
        self.longevity = longevity

        self.pool_state = (
            RewardPoolState.CARRY if self.store.reward_total else RewardPoolState.EMPTY
        )

        # Running totals (process lifetime, not persisted)
        self.total_fees_collected = 0
        self.total_rewards_paid = 0
        self.total_rewards_wasted = 0

    # =========================================================================
    # Genesis
    # =========================================================================

    def genesis_init(self, outputs: Iterable[TransactionOutput]) -> List[bytes]:
        """
        Seed the UTXO set with the genesis outputs.

        Each output is keyed H(encode(output)).

        Args:
            outputs: Genesis outputs

        Returns:
            Keys of the seeded outputs, in order

        Raises:
            ValueError: zero-valued output, or two outputs with the same key
        """
        keys: List[bytes] = []
        total = 0
        with self.state.transactional():
            for i, output in enumerate(outputs):
                if output.value < 1:
                    raise ValueError(f"Genesis output {i} has zero value")
                key = output.genesis_key()
                if self.store.contains(key):
                    raise ValueError(f"Genesis output {i} duplicates key {bytes_to_hex(key)}")
                self.store.insert(key, output)
                keys.append(key)
                total += output.value

        logger.info(f"Genesis seeded: {len(keys)} outputs, {total} total value")
        return keys

    # =========================================================================
    # Dispatch: spend
    # =========================================================================

    def spend(self, origin: Any, transaction: Transaction) -> int:
        """
        Validate and apply a transaction atomically.

        Args:
            origin: Ignored; transactions authenticate by signature
            transaction: Transaction to apply

        Returns:
            The fee credited to the reward pool

        Raises:
            UtxoError: the transaction was rejected; state is unchanged
        """
        try:
            with self.state.transactional():
                fee = validate_transaction(transaction, self.store, self.verifier)
                self._update_storage(transaction, fee)
        except UtxoError as e:
            logger.info(
                f"Rejected tx {short_hex(transaction.tx_hash)}: {e.kind.name} ({e})"
            )
            raise

        if fee:
            self.total_fees_collected += fee
            self.pool_state = RewardPoolState.ACCRUING

        self.event_sink(TransactionApplied(transaction))
        logger.debug(
            f"Applied tx {short_hex(transaction.tx_hash)} "
            f"({len(transaction.inputs)} in, {len(transaction.outputs)} out, fee={fee})"
        )
        return fee

    def _update_storage(self, transaction: Transaction, fee: int) -> None:
        """
        Write a validated transaction's effects.

        Each new key is a hash of the encoded transaction and the output's
        position in `transaction.outputs`.
        """
        if fee:
            self.store.reward_total = checked_add_u128(self.store.reward_total, fee)

        for inp in transaction.inputs:
            self.store.remove(inp.outpoint)

        encoded = transaction.to_bytes()
        index = 0
        for output in transaction.outputs:
            key = derive_output_key(encoded, index)
            if index == U64_MAX:
                raise IndexOverflow("output index overflow")
            index += 1
            self.store.insert(key, output)

    # =========================================================================
    # Hook: on_finalize
    # =========================================================================

    def on_finalize(self, block_number: Optional[int] = None) -> None:
        """
        Disperse the reward pool across the current authorities.

        Never raises for pool or collision conditions; outcomes are
        reported through RewardPaid / RewardWasted events.

        Args:
            block_number: Block being finalized; taken from the
                block-number source when omitted
        """
        if block_number is None:
            if self.block_number is None:
                raise ValueError("No block number given and no block-number source configured")
            block_number = self.block_number()
        encode_u64(block_number)  # u64 range check

        authorities = list(self.authorities())
        pool = self.store.reward_total

        if not authorities:
            if pool:
                self.pool_state = RewardPoolState.CARRY
            logger.debug(f"Block {block_number}: no authorities, carrying {pool}")
            return

        self.pool_state = RewardPoolState.DISPERSING
        share = pool // len(authorities)
        if share == 0:
            self.pool_state = RewardPoolState.CARRY if pool else RewardPoolState.EMPTY
            logger.debug(
                f"Block {block_number}: pool {pool} too small for "
                f"{len(authorities)} authorities, carrying"
            )
            return

        events: List[Event] = []
        paid = 0
        wasted = 0

        with self.state.transactional():
            self.store.reward_total = pool - share * len(authorities)

            for authority in authorities:
                if not isinstance(authority, bytes) or len(authority) != PUBLIC_KEY_SIZE:
                    logger.warning(f"Block {block_number}: malformed authority key, share forfeited")
                    events.append(RewardWasted(None))
                    wasted += share
                    continue

                output = TransactionOutput(value=share, pubkey=authority)
                key = output.reward_key(block_number)
                if self.store.contains(key):
                    logger.warning(
                        f"Block {block_number}: reward key collision for "
                        f"{short_hex(authority)}, share forfeited"
                    )
                    events.append(RewardWasted(authority))
                    wasted += share
                    continue

                self.store.insert(key, output)
                events.append(RewardPaid(authority, share))
                paid += share

        self.pool_state = RewardPoolState.EMPTY
        self.total_rewards_paid += paid
        self.total_rewards_wasted += wasted
        for event in events:
            self.event_sink(event)

        logger.info(
            f"Block {block_number}: dispersed {paid} to {len(authorities)} authorities "
            f"(share={share}, wasted={wasted}, carry={self.store.reward_total})"
        )

    # =========================================================================
    # Pool Support
    # =========================================================================

    def validate_for_pool(self, transaction: Transaction) -> ValidTransaction:
        """Tag a transaction for a transaction pool against current state."""
        return pool_validity(transaction, self.store, self.verifier, self.longevity)

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def reward_total(self) -> int:
        return self.store.reward_total

    def get_utxo(self, outpoint: bytes) -> Optional[TransactionOutput]:
        return self.store.get(outpoint)

    def utxos_for(self, pubkey: bytes) -> Dict[bytes, TransactionOutput]:
        """All unspent outputs owned by `pubkey`, keyed by outpoint."""
        return {key: out for key, out in self.store.items() if out.pubkey == pubkey}

    def balance_of(self, pubkey: bytes) -> int:
        return sum(out.value for out in self.utxos_for(pubkey).values())

    def __repr__(self) -> str:
        return f"UtxoModule(utxos={len(self.store)}, reward_total={self.reward_total})"

    def stats(self) -> dict:
        """Get ledger statistics."""
        return {
            "utxo_count": len(self.store),
            "total_value": self.store.total_value(),
            "reward_total": self.reward_total,
            "pool_state": self.pool_state.value,
            "total_fees_collected": self.total_fees_collected,
            "total_rewards_paid": self.total_rewards_paid,
            "total_rewards_wasted": self.total_rewards_wasted,
        }

