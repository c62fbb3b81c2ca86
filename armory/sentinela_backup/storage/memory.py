"""
Dictionary-backed KeyValueStore.

Stands in for the SQLite store wherever a data directory is unwanted.
Values are held as JSON text, exactly as the SQLite store keeps them, so a
value read back is a fresh copy and an unserializable value fails at set()
the same way it would in production.

Write failures can be injected per key with fail_writes(), and put_raw()
plants undecodable text to exercise the corrupt-value path of get().
Successful writes are recorded in order in `writes`, which lets restore
tests assert which collections were touched.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, List, Set

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore:
    """In-memory implementation of KeyValueStore for testing.

    Attributes:
        writes: Keys in the order they were successfully written

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> store.fail_writes("sentinela_cautelas")
        >>> store.set("sentinela_cautelas", [])  # raises PersistenceError
    """

    def __init__(self, initial: Dict[str, Any] | None = None) -> None:
        """Initialize the store.

        Args:
            initial: Optional values to seed the store with
        """
        self._data: Dict[str, str] = {}
        self._failing: Set[str] = set()
        self._lock = threading.Lock()
        self.writes: List[str] = []
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"Error reading {key}", exc_info=True)
            return default

    def set(self, key: str, value: Any) -> None:
        if key in self._failing:
            raise PersistenceError(f"Simulated write failure for {key}", key=key)
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Value for {key} is not serializable: {e}", key=key)
        with self._lock:
            self._data[key] = encoded
            self.writes.append(key)

    # Testing helpers

    def fail_writes(self, *keys: str) -> None:
        """Make subsequent writes to the given keys raise PersistenceError."""
        self._failing.update(keys)

    def put_raw(self, key: str, raw: str) -> None:
        """Store raw text under key, bypassing encoding (to simulate corruption)."""
        with self._lock:
            self._data[key] = raw

    def snapshot(self) -> Dict[str, Any]:
        """Decoded copy of everything stored."""
        with self._lock:
            return {key: json.loads(raw) for key, raw in self._data.items()}


__all__ = ["InMemoryKeyValueStore"]
