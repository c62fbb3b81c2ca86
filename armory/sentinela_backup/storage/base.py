"""
Key-value persistence contract consumed by the backup subsystem.

The tracker persists each collection as one JSON document under a fixed
key. The backup subsystem never looks inside the collections; it only reads
and writes them whole through this contract.

Invariants:
    - get() never raises for a missing or unreadable key; it returns the default
    - set() either persists the whole value or raises PersistenceError
    - Values are JSON-compatible (dict, list, str, int, float, bool, None)

How to change safely:
    - Storage keys are shared with the tracker UI; never rename them
    - New backends must implement the KeyValueStore protocol
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol, runtime_checkable


class StorageKeys:
    """Keys under which the tracker stores its collections."""

    MATERIALS = "sentinela_materials"
    PERSONNEL = "sentinela_personnel"
    CAUTELAS = "sentinela_cautelas"
    LOGS = "sentinela_logs"
    SETTINGS = "sentinela_settings"


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for local persistence backends.

    Example:
        >>> store = SqliteKeyValueStore("/var/lib/sentinela/sentinela.db")
        >>> store.set(StorageKeys.MATERIALS, [{"id": "m1"}])
        >>> store.get(StorageKeys.MATERIALS, [])
        [{'id': 'm1'}]
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Read and decode the value stored under key.

        Returns:
            The decoded value, or default if absent or unreadable
        """
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Encode and store value under key.

        Raises:
            PersistenceError: If the value could not be written
        """
        ...


__all__ = ["KeyValueStore", "StorageKeys"]
