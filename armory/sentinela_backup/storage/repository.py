"""
Typed access to the tracker's persisted collections.

The repository is the only place that knows which storage key holds which
collection, what the settings defaults are, and how audit entries are
appended. Collections other than settings are passed through untouched.

Invariants:
    - Audit entries are prepended, so reads return newest first
    - get_settings() always returns the defaults merged under stored values
    - Writes propagate PersistenceError; reads never raise
"""

from __future__ import annotations

import copy
import logging
from typing import Any

import pydantic

from ..clock import Clock, utc_now
from ..models import AuditLogEntry, BackupFrequency, BackupPolicy
from .base import KeyValueStore, StorageKeys

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS: dict[str, Any] = {
    "institutionName": "Polícia Militar",
    "theme": "light",
    "admins": [],
    "backup": {"enabled": False, "frequency": BackupFrequency.NEVER.value},
}


class InventoryRepository:
    """Collection-level access on top of a KeyValueStore.

    Example:
        >>> repo = InventoryRepository(InMemoryKeyValueStore())
        >>> repo.add_log("Sgt. Lima", "Restauração", "ok")
        >>> repo.get_logs()[0]["action"]
        'Restauração'
    """

    def __init__(self, store: KeyValueStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    def get_materials(self) -> list[Any]:
        return self.store.get(StorageKeys.MATERIALS, [])

    def save_materials(self, data: list[Any]) -> None:
        self.store.set(StorageKeys.MATERIALS, data)

    def get_personnel(self) -> list[Any]:
        return self.store.get(StorageKeys.PERSONNEL, [])

    def save_personnel(self, data: list[Any]) -> None:
        self.store.set(StorageKeys.PERSONNEL, data)

    def get_cautelas(self) -> list[Any]:
        return self.store.get(StorageKeys.CAUTELAS, [])

    def save_cautelas(self, data: list[Any]) -> None:
        self.store.set(StorageKeys.CAUTELAS, data)

    def get_logs(self) -> list[dict[str, Any]]:
        return self.store.get(StorageKeys.LOGS, [])

    def save_logs(self, data: list[dict[str, Any]]) -> None:
        self.store.set(StorageKeys.LOGS, data)

    def get_settings(self) -> dict[str, Any]:
        stored = self.store.get(StorageKeys.SETTINGS, None)
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        if isinstance(stored, dict):
            settings.update(stored)
        return settings

    def save_settings(self, data: dict[str, Any]) -> None:
        self.store.set(StorageKeys.SETTINGS, data)

    def get_admins(self) -> list[Any]:
        admins = self.get_settings().get("admins")
        return admins if isinstance(admins, list) else []

    def get_backup_policy(self) -> BackupPolicy:
        raw = self.get_settings().get("backup")
        if not isinstance(raw, dict):
            return BackupPolicy()
        try:
            return BackupPolicy.model_validate(raw)
        except pydantic.ValidationError as e:
            logger.warning(f"Ignoring invalid backup policy in settings: {e}")
            return BackupPolicy()

    def save_backup_policy(self, policy: BackupPolicy) -> None:
        settings = self.get_settings()
        settings["backup"] = policy.to_settings()
        self.save_settings(settings)

    def add_log(self, actor_name: str, action: str, details: str) -> AuditLogEntry:
        """Prepend one audit entry.

        Raises:
            PersistenceError: If the log collection could not be written
        """
        entry = AuditLogEntry.create(actor_name, action, details, self.clock())
        logs = self.get_logs()
        self.save_logs([entry.to_dict(), *logs])
        logger.info(
            "Audit entry recorded",
            extra={"actor": actor_name, "action": action, "details": details},
        )
        return entry


__all__ = ["DEFAULT_SETTINGS", "InventoryRepository"]
