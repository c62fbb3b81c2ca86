"""
Records shared between the tracker UI and the backup subsystem.

Field names on the wire are the camelCase names the tracker UI writes;
Python code uses snake_case attributes through pydantic aliases.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .clock import to_iso


class BackupFrequency(str, Enum):
    """How often the auto-backup cycle should run."""

    NEVER = "never"
    ON_BOOT = "on_boot"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class AuditAction:
    """Action labels shown in the tracker's audit screen."""

    LOCAL_BACKUP = "Backup Local"
    LOCAL_BACKUP_ERROR = "Erro Backup"
    RESTORE = "Restauração"
    RESTORE_ERROR = "Erro Restauração"
    REMOTE_BACKUP = "Backup Drive"
    REMOTE_BACKUP_ERROR = "Erro Backup Drive"


class AuditLogEntry(BaseModel):
    """One append-only audit record.

    Attributes:
        id: Unique entry identifier
        actor_name: Who triggered the action (armorer name or "Automático")
        action: Short action label (see AuditAction)
        details: Human-readable outcome
        timestamp: ISO instant
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    actor_name: str = Field(alias="armorerName")
    action: str
    details: str
    timestamp: str

    @classmethod
    def create(cls, actor_name: str, action: str, details: str, now: datetime) -> AuditLogEntry:
        return cls(
            id=uuid.uuid4().hex,
            actor_name=actor_name,
            action=action,
            details=details,
            timestamp=to_iso(now),
        )

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class BackupPolicy(BaseModel):
    """Auto-backup settings stored under settings["backup"].

    Attributes:
        enabled: Whether automatic remote backups are on
        frequency: Cycle frequency
        last_backup_timestamp: Instant of the last fully successful cycle
        remote_folder_id: Cached id of the resolved backups folder
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    enabled: bool = False
    frequency: BackupFrequency = BackupFrequency.NEVER
    last_backup_timestamp: datetime | None = Field(default=None, alias="lastBackupDate")
    remote_folder_id: str | None = Field(default=None, alias="folderId")

    @field_validator("last_backup_timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_serializer("last_backup_timestamp")
    def _serialize_timestamp(self, value: datetime | None) -> str | None:
        return to_iso(value) if value else None

    def to_settings(self) -> dict:
        """Wire form written back into the settings aggregate."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


__all__ = ["AuditAction", "AuditLogEntry", "BackupFrequency", "BackupPolicy"]
