"""
SQLite storage adapter.

Stores each cache entry as one row of a single table. This is the durable
backend for processes that need the cache to survive restarts.

Table schema:
    <table>:
        - key TEXT PRIMARY KEY
        - value TEXT NOT NULL

Invariants:
    - Every set/remove/clear is committed before the call returns
    - sqlite3 errors are surfaced as StorageError

How to change safely:
    - The table layout is part of the on-disk format; add columns with
      defaults, never rename existing ones
    - Test with ":memory:" and with a file path
"""

from __future__ import annotations

import logging
import re
import sqlite3
from pathlib import Path
from typing import List, Optional

from .base import StorageConnectionError, StorageError

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SqliteStorage:
    """SQLite implementation of StorageAdapter.

    The connection is opened lazily and kept for the adapter's lifetime;
    call close() (or use the adapter as a context manager) to release it.

    Example:
        >>> with SqliteStorage("/var/lib/app/cache.db") as storage:
        ...     cache = InStorageCache(storage)
    """

    def __init__(
        self,
        path: str,
        table: str = "cache_entries",
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        """Initialize the adapter.

        Args:
            path: Database file path, or ":memory:"
            table: Table holding the entries
            busy_timeout_ms: SQLite busy timeout
            wal_mode: Enable SQLite WAL journal mode (file databases only)
        """
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self.path = path
        self.table = table
        self.busy_timeout_ms = busy_timeout_ms
        self.wal_mode = wal_mode
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    def _connect(self) -> sqlite3.Connection:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(
                self.path,
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit
            )
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            if self.wal_mode and self.path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.table} ("
                "key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
        except sqlite3.Error as e:
            raise StorageConnectionError(f"Failed to open SQLite storage {self.path}: {e}") from e
        logger.info("Opened SQLite storage", extra={"path": self.path, "table": self.table})
        return conn

    def get(self, key: str) -> Optional[str]:
        try:
            row = self.connection.execute(
                f"SELECT value FROM {self.table} WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read key {key!r}: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(key, str) or not isinstance(value, str):
            raise TypeError("storage keys and values must be strings")
        try:
            self.connection.execute(
                f"INSERT OR REPLACE INTO {self.table} (key, value) VALUES (?, ?)",
                (key, value),
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write key {key!r}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self.connection.execute(f"DELETE FROM {self.table} WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove key {key!r}: {e}") from e

    def clear(self) -> None:
        try:
            self.connection.execute(f"DELETE FROM {self.table}")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear storage: {e}") from e

    def keys(self) -> List[str]:
        try:
            rows = self.connection.execute(
                f"SELECT key FROM {self.table} ORDER BY key"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        return [row[0] for row in rows]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SqliteStorage:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
