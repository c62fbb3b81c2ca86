"""
Local persistence for Sentinela Backup.

This module provides the key-value contract the tracker persists through,
plus backends and the collection-level repository:
- SQLite (kiosk deployments)
- In-memory (for testing)

Invariants:
    - Reads never raise; unreadable values fall back to defaults
    - Failed writes raise PersistenceError
"""

from .base import KeyValueStore, StorageKeys
from .memory import InMemoryKeyValueStore
from .repository import DEFAULT_SETTINGS, InventoryRepository
from .sqlite import SqliteKeyValueStore

__all__ = [
    "DEFAULT_SETTINGS",
    "InMemoryKeyValueStore",
    "InventoryRepository",
    "KeyValueStore",
    "SqliteKeyValueStore",
    "StorageKeys",
]
