"""
Configuration management for Sentinela Backup.

All configuration is done via environment variables prefixed with SENTINELA_.
Each section is a pydantic-settings class; BackupConfig aggregates them and
provides validation.

Invariants:
    - All settings have sensible defaults for local development
    - Remote credentials are only required when a remote backend is selected
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep env var names stable; deployed kiosks set them once
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class RemoteBackend(Enum):
    """Supported remote object stores."""

    NONE = "none"
    DRIVE = "drive"
    S3 = "s3"
    MEMORY = "memory"


class LockoutPolicy(Enum):
    """What to do when a restore would leave no administrator."""

    WARN = "warn"
    BLOCK = "block"


class AuditMode(Enum):
    """How restored audit history combines with the local one."""

    REPLACE = "replace"
    MERGE = "merge"


class StorageConfig(BaseSettings):
    """Local key-value persistence.

    Attributes:
        data_dir: Directory holding the SQLite file
        db_file: SQLite file name
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    data_dir: str = Field(default="./data")
    db_file: str = Field(default="sentinela.db")
    busy_timeout_ms: int = Field(default=5000)

    model_config = {"env_prefix": "SENTINELA_STORAGE_"}


class RemoteConfig(BaseSettings):
    """Remote object store configuration.

    Attributes:
        backend: Which remote store to replicate to
        root_folder: Application root folder name on the remote
        backups_folder: Backups sub-folder name
        request_timeout_s: Timeout applied to every network call
        drive_client_id: OAuth client id (Drive)
        drive_client_secret: OAuth client secret (Drive)
        drive_refresh_token: Cached grant used for silent authentication (Drive)
        drive_api_base: Drive REST base URL
        drive_upload_base: Drive upload base URL
        drive_token_url: OAuth token endpoint
        s3_bucket: Bucket name (S3)
        s3_region: Region (S3)
        s3_endpoint: Custom endpoint, e.g. MinIO (S3)
        s3_access_key_id: Access key (S3, optional; credential chain otherwise)
        s3_secret_access_key: Secret key (S3)
    """

    backend: RemoteBackend = Field(default=RemoteBackend.NONE)
    root_folder: str = Field(default="App_Controle_Armamento")
    backups_folder: str = Field(default="Backups")
    request_timeout_s: float = Field(default=30.0)

    drive_client_id: str | None = Field(default=None)
    drive_client_secret: str | None = Field(default=None)
    drive_refresh_token: str | None = Field(default=None)
    drive_api_base: str = Field(default="https://www.googleapis.com")
    drive_upload_base: str = Field(default="https://www.googleapis.com/upload")
    drive_token_url: str = Field(default="https://oauth2.googleapis.com/token")

    s3_bucket: str | None = Field(default=None)
    s3_region: str = Field(default="us-east-1")
    s3_endpoint: str | None = Field(default=None)
    s3_access_key_id: str | None = Field(default=None)
    s3_secret_access_key: str | None = Field(default=None)

    model_config = {"env_prefix": "SENTINELA_REMOTE_"}

    @property
    def folder_path(self) -> list[str]:
        """Folder chain holding the backups, root first."""
        return [self.root_folder, self.backups_folder]


class SchedulerConfig(BaseSettings):
    """Auto-backup cycle configuration.

    Attributes:
        step_timeout_s: Upper bound for each network step of a cycle
        initiator: Actor name recorded in audit entries for automatic cycles
        archive_prefix: File name prefix for uploaded archives
    """

    step_timeout_s: float = Field(default=120.0)
    initiator: str = Field(default="Automático")
    archive_prefix: str = Field(default="backup_auto")

    model_config = {"env_prefix": "SENTINELA_SCHEDULER_"}


class RestoreConfig(BaseSettings):
    """Restore behavior.

    Attributes:
        lockout_policy: warn (log only) or block when no admin would remain
        audit_mode: replace restored history wholesale, or merge with local
    """

    lockout_policy: LockoutPolicy = Field(default=LockoutPolicy.WARN)
    audit_mode: AuditMode = Field(default=AuditMode.REPLACE)

    model_config = {"env_prefix": "SENTINELA_RESTORE_"}


class ObservabilityConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text")

    model_config = {"env_prefix": "SENTINELA_"}


@dataclass
class BackupConfig:
    """Complete subsystem configuration.

    Attributes:
        storage: Local persistence configuration
        remote: Remote object store configuration
        scheduler: Auto-backup configuration
        restore: Restore configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    restore: RestoreConfig = field(default_factory=RestoreConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig(),
            remote=RemoteConfig(),
            scheduler=SchedulerConfig(),
            restore=RestoreConfig(),
            observability=ObservabilityConfig(),
        )
        config.validate()
        return config

    @property
    def db_path(self) -> str:
        return os.path.join(self.storage.data_dir, self.storage.db_file)

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        remote = self.remote
        if remote.backend == RemoteBackend.DRIVE:
            if not remote.drive_client_id:
                raise ValueError(
                    "SENTINELA_REMOTE_DRIVE_CLIENT_ID is required when backend=drive"
                )
        elif remote.backend == RemoteBackend.S3:
            if not remote.s3_bucket:
                raise ValueError("SENTINELA_REMOTE_S3_BUCKET is required when backend=s3")

        if remote.request_timeout_s <= 0 or self.scheduler.step_timeout_s <= 0:
            raise ValueError("Timeouts must be positive")

        if not remote.root_folder or not remote.backups_folder:
            raise ValueError("Remote folder names must not be empty")

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Backup configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "remote_backend": self.remote.backend.value,
                "remote_path": "/".join(self.remote.folder_path),
                "drive_client_id": self.remote.drive_client_id,
                "drive_refresh_token_set": bool(self.remote.drive_refresh_token),
                "s3_bucket": self.remote.s3_bucket,
                "request_timeout_s": self.remote.request_timeout_s,
                "lockout_policy": self.restore.lockout_policy.value,
                "audit_mode": self.restore.audit_mode.value,
                "log_level": self.observability.log_level,
            },
        )
