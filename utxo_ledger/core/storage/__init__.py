"""
Persistent Storage Module.

Provides a SQLite-backed host state for the UTXO module.
"""

from utxo_ledger.core.storage.sqlite_state import SQLiteState

__all__ = ["SQLiteState"]
