"""
SQLite-backed key-value store for memory records.

Tables:
- memories: mem:<owner>:<memory_id> → Memory JSON
- cortex: cortex:<owner> → FrontalCortex JSON

All values are stored as TEXT with a write timestamp.
"""

import sqlite3
import threading
import time
from pathlib import Path
from typing import Iterable, Iterator, Optional


TABLES = ("memories", "cortex")


class KVStore:
    """
    File-backed SQLite key-value store.

    Thread-safe with WAL mode: one connection shared behind a lock, and
    multi-key writes run in one transaction.
    """

    def __init__(self, db_path: Path):
        """
        Initialize KV store at given path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            timeout=10.0,
        )

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._lock = threading.RLock()

        self._init_tables()

    def _init_tables(self) -> None:
        """Create tables if they don't exist."""
        for table in TABLES:
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    ts INTEGER NOT NULL
                )
            """)

        self._conn.commit()

    @staticmethod
    def _check_table(table: str) -> None:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")

    def set(self, table: str, key: str, value: str) -> None:
        """
        Set a key-value pair in the specified table.

        Args:
            table: Table name (memories, cortex)
            key: String key
            value: Serialized value
        """
        self.set_many(table, [(key, value)])

    def set_many(self, table: str, items: Iterable[tuple[str, str]]) -> None:
        """
        Upsert several key-value pairs atomically.

        Args:
            table: Table name
            items: (key, value) pairs
        """
        self._check_table(table)
        ts = int(time.time())

        rows = [(key, value, ts) for key, value in items]

        with self._lock, self._conn:
            self._conn.executemany(
                f"INSERT OR REPLACE INTO {table} (key, value, ts) VALUES (?, ?, ?)",
                rows
            )

    def get(self, table: str, key: str) -> Optional[str]:
        """
        Get value for a key from the specified table.

        Returns:
            Stored value if found, None otherwise
        """
        self._check_table(table)
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT value FROM {table} WHERE key = ?",
                (key,)
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def scan(self, table: str, prefix: str) -> Iterator[tuple[str, str]]:
        """
        Iterate (key, value) pairs whose key starts with prefix, ordered by key.

        Args:
            table: Table name
            prefix: Key prefix
        """
        self._check_table(table)
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._lock:
            rows = self._conn.execute(
                f"SELECT key, value FROM {table} WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escaped + "%",)
            ).fetchall()
        yield from rows

    def delete(self, table: str, key: str) -> bool:
        """
        Delete a key from the specified table.

        Returns:
            True if a row was removed
        """
        return self.delete_many(table, [key]) > 0

    def delete_many(self, table: str, keys: Iterable[str]) -> int:
        """
        Delete several keys atomically.

        Returns:
            Number of rows removed
        """
        self._check_table(table)
        removed = 0

        with self._lock, self._conn:
            for key in keys:
                cursor = self._conn.execute(
                    f"DELETE FROM {table} WHERE key = ?",
                    (key,)
                )
                removed += cursor.rowcount

        return removed

    def stats(self, table: str) -> dict:
        """
        Get statistics for a table.

        Returns:
            Dict with count, total_bytes, oldest_ts, newest_ts
        """
        self._check_table(table)
        with self._lock:
            row = self._conn.execute(f"""
                SELECT
                    COUNT(*) as count,
                    SUM(LENGTH(value)) as total_bytes,
                    MIN(ts) as oldest_ts,
                    MAX(ts) as newest_ts
                FROM {table}
            """).fetchone()

        return {
            "count": row[0] or 0,
            "total_bytes": row[1] or 0,
            "oldest_ts": row[2] or 0,
            "newest_ts": row[3] or 0,
        }

    def close(self) -> None:
        """Close database connection."""
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
