import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

from utxo_ledger.core.state.store import StateBackend
from utxo_ledger.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteState(StateBackend):
    """
    SQLite backend for host state.

    One `kv_store` table holds every cell. Outside a transactional block each
    write commits on its own; inside, writes go to a savepoint that is
    released on success and rolled back on error. Savepoints nest, so
    nested transactional blocks behave like the in-memory backend.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0

        # Ensure directory exists
        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()
        logger.info(f"SQLiteState opened at {self.db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create the connection."""
        if self._conn is None:
            # Autocommit mode; transactions are driven by explicit savepoints
            self._conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key BLOB PRIMARY KEY,
                value BLOB NOT NULL
            )
        """)

    # =========================================================================
    # Key-Value Operations
    # =========================================================================

    def get(self, key: bytes) -> Optional[bytes]:
        """Get value by key."""
        cursor = self._get_conn().execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = cursor.fetchone()
        return bytes(row["value"]) if row else None

    def put(self, key: bytes, value: bytes) -> None:
        """Save a key-value pair."""
        self._get_conn().execute(
            "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
            (key, value),
        )

    def delete(self, key: bytes) -> None:
        self._get_conn().execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        cursor = self._get_conn().execute(
            "SELECT key, value FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        )
        for row in cursor.fetchall():
            yield bytes(row["key"]), bytes(row["value"])

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transactional(self):
        conn = self._get_conn()
        self._depth += 1
        name = f"sp_{self._depth}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield self
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            conn.execute(f"RELEASE SAVEPOINT {name}")
        finally:
            self._depth -= 1

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
