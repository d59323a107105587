"""
SQLite-backed key-value store.

Uses SQLite with one table per record type (e.g. ``memories``).
All values stored as BLOB with a write timestamp.
"""

import sqlite3
import threading
import time
from pathlib import Path
from typing import Iterable, List, Optional, Tuple


class KVStore:
    """
    File-backed SQLite key-value store.

    Thread-safe with WAL mode and a connection-level lock.
    """

    def __init__(self, db_path: Path, tables: Iterable[str] = ("memories",)):
        """
        Initialize KV store at given path.

        Args:
            db_path: Path to SQLite database file (":memory:" for a private in-memory DB)
            tables: Table names to create
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else None
        if self.db_path is not None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.tables = tuple(tables)
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(db_path),
            check_same_thread=False,  # Allow multi-threaded access
            timeout=10.0,
        )

        if self.db_path is not None:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")

        self._init_tables()

    def _init_tables(self) -> None:
        """Create tables if they don't exist."""
        for table in self.tables:
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    ts INTEGER NOT NULL
                )
            """)
            self._conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_ts
                ON {table}(ts)
            """)

        self._conn.commit()

    def _check_table(self, table: str) -> None:
        if table not in self.tables:
            raise ValueError(f"Unknown table: {table}")

    def set(self, table: str, key: str, value: bytes) -> None:
        """
        Set a key-value pair in the specified table.

        Args:
            table: Table name
            key: String key
            value: Binary value
        """
        self._check_table(table)
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO {table} (key, value, ts) VALUES (?, ?, ?)",
                (key, value, int(time.time()))
            )
            self._conn.commit()

    def get(self, table: str, key: str) -> Optional[bytes]:
        """Get value for a key, or None."""
        self._check_table(table)
        with self._lock:
            row = self._conn.execute(
                f"SELECT value FROM {table} WHERE key = ?",
                (key,)
            ).fetchone()
        return row[0] if row else None

    def delete(self, table: str, key: str) -> bool:
        """
        Delete a key from the specified table.

        Returns:
            True if a row was deleted
        """
        self._check_table(table)
        with self._lock:
            cursor = self._conn.execute(
                f"DELETE FROM {table} WHERE key = ?",
                (key,)
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def delete_many(self, table: str, keys: List[str]) -> int:
        """Delete several keys in one transaction. Returns rows deleted."""
        self._check_table(table)
        if not keys:
            return 0
        with self._lock:
            placeholders = ",".join("?" * len(keys))
            cursor = self._conn.execute(
                f"DELETE FROM {table} WHERE key IN ({placeholders})",
                keys
            )
            self._conn.commit()
        return cursor.rowcount

    def items(
        self,
        table: str,
        prefix: Optional[str] = None,
        suffix: Optional[str] = None,
    ) -> List[Tuple[str, bytes]]:
        """
        List (key, value) pairs, optionally filtered by key prefix/suffix.

        Returns:
            Pairs ordered by key
        """
        self._check_table(table)
        query = f"SELECT key, value FROM {table}"
        params: list = []
        clauses = []
        if prefix:
            clauses.append("substr(key, 1, ?) = ?")
            params.extend([len(prefix), prefix])
        if suffix:
            clauses.append("substr(key, -?) = ?")
            params.extend([len(suffix), suffix])
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY key"

        with self._lock:
            return [(row[0], row[1]) for row in self._conn.execute(query, params).fetchall()]

    def list_keys(self, table: str, prefix: Optional[str] = None) -> List[str]:
        """List keys, optionally filtered by prefix."""
        return [key for key, _ in self.items(table, prefix=prefix)]

    def purge_table(self, table: str) -> int:
        """
        Delete all entries from a table.

        Returns:
            Number of rows deleted
        """
        self._check_table(table)
        with self._lock:
            count = self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            self._conn.execute(f"DELETE FROM {table}")
            self._conn.commit()
        return count

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
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
