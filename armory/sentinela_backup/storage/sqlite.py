"""
SQLite-backed key-value store.

One table holds every collection as a JSON document keyed by its storage
key. This mirrors the browser storage the tracker UI was built on while
giving the kiosk a durable file.

Invariants:
    - One row per key; set() replaces the row atomically
    - Connections are created per operation (safe across executor threads)

Table schema:
    kv_store:
        - key TEXT PRIMARY KEY
        - value_json TEXT NOT NULL
        - updated_at INTEGER (Unix ms)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


class SqliteKeyValueStore:
    """KeyValueStore persisted in a single SQLite file.

    Example:
        >>> store = SqliteKeyValueStore("./data/sentinela.db")
        >>> store.set("sentinela_settings", {"theme": "dark"})
    """

    def __init__(
        self,
        db_path: str,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store, creating the schema if needed.

        Args:
            db_path: SQLite database file path
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT value_json FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error:
            logger.error(f"Error reading {key}", exc_info=True)
            return default
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.error(f"Error reading {key}", exc_info=True)
            return default

    def set(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Value for {key} is not serializable: {e}", key=key)
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value_json, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        updated_at = excluded.updated_at
                    """,
                    (key, encoded, int(time.time() * 1000)),
                )
        except sqlite3.Error as e:
            logger.error(f"Error saving {key}: {e}")
            raise PersistenceError(f"Failed to save {key}: {e}", key=key) from e


__all__ = ["SqliteKeyValueStore"]
