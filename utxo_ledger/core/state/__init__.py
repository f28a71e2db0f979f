"""UTXO types, store, validator and runtime module"""
from utxo_ledger.core.state.transaction import (
    Transaction,
    TransactionInput,
    TransactionOutput,
    create_transfer,
    derive_output_key,
)
from utxo_ledger.core.state.store import (
    StateBackend,
    InMemoryState,
    UtxoStore,
)
from utxo_ledger.core.state.validator import (
    ValidTransaction,
    validate_transaction,
    pool_validity,
)
from utxo_ledger.core.state.ledger import UtxoModule, RewardPoolState

__all__ = [
    "Transaction",
    "TransactionInput",
    "TransactionOutput",
    "create_transfer",
    "derive_output_key",
    "StateBackend",
    "InMemoryState",
    "UtxoStore",
    "ValidTransaction",
    "validate_transaction",
    "pool_validity",
    "UtxoModule",
    "RewardPoolState",
]
