"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- Environment variable parsing
- Validation of remote backend requirements
"""

import logging
import os

import pytest

from armory.sentinela_backup.config import (
    AuditMode,
    BackupConfig,
    LockoutPolicy,
    RemoteBackend,
    RemoteConfig,
    SchedulerConfig,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment out of the tests."""
    for name in list(os.environ):
        if name.startswith("SENTINELA_"):
            monkeypatch.delenv(name)


class TestBackupConfig:
    """Tests for BackupConfig."""

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SENTINELA_STORAGE_DATA_DIR", str(tmp_path))

        config = BackupConfig.from_env()

        assert config.remote.backend == RemoteBackend.NONE
        assert config.remote.folder_path == ["App_Controle_Armamento", "Backups"]
        assert config.restore.lockout_policy == LockoutPolicy.WARN
        assert config.restore.audit_mode == AuditMode.REPLACE
        assert config.scheduler.initiator == "Automático"
        assert config.db_path == str(tmp_path / "sentinela.db")

    def test_reads_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SENTINELA_STORAGE_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("SENTINELA_REMOTE_BACKEND", "s3")
        monkeypatch.setenv("SENTINELA_REMOTE_S3_BUCKET", "sentinela-backups")
        monkeypatch.setenv("SENTINELA_REMOTE_REQUEST_TIMEOUT_S", "5")
        monkeypatch.setenv("SENTINELA_RESTORE_LOCKOUT_POLICY", "block")
        monkeypatch.setenv("SENTINELA_RESTORE_AUDIT_MODE", "merge")
        monkeypatch.setenv("SENTINELA_LOG_FORMAT", "json")

        config = BackupConfig.from_env()

        assert config.remote.backend == RemoteBackend.S3
        assert config.remote.s3_bucket == "sentinela-backups"
        assert config.remote.request_timeout_s == 5.0
        assert config.restore.lockout_policy == LockoutPolicy.BLOCK
        assert config.restore.audit_mode == AuditMode.MERGE
        assert config.observability.log_format == "json"

    def test_drive_requires_client_id(self, monkeypatch):
        monkeypatch.setenv("SENTINELA_REMOTE_BACKEND", "drive")

        with pytest.raises(ValueError, match="DRIVE_CLIENT_ID"):
            BackupConfig.from_env()

    def test_s3_requires_bucket(self):
        config = BackupConfig(remote=RemoteConfig(backend=RemoteBackend.S3))

        with pytest.raises(ValueError, match="S3_BUCKET"):
            config.validate()

    def test_timeouts_must_be_positive(self):
        config = BackupConfig(scheduler=SchedulerConfig(step_timeout_s=0))

        with pytest.raises(ValueError, match="positive"):
            config.validate()

    def test_folder_names_must_not_be_empty(self):
        config = BackupConfig(remote=RemoteConfig(backups_folder=""))

        with pytest.raises(ValueError, match="folder"):
            config.validate()

    def test_invalid_enum_value(self, monkeypatch):
        """pydantic errors surface as ValueError for the CLI to report."""
        monkeypatch.setenv("SENTINELA_REMOTE_BACKEND", "ftp")

        with pytest.raises(ValueError):
            BackupConfig.from_env()

    def test_log_config_redacts_secrets(self, caplog):
        config = BackupConfig(
            remote=RemoteConfig(
                backend=RemoteBackend.DRIVE,
                drive_client_id="client",
                drive_client_secret="s3cr3t",
                drive_refresh_token="refresh-me",
            )
        )

        with caplog.at_level(logging.INFO):
            config.log_config()

        record = caplog.records[-1]
        assert record.drive_refresh_token_set is True
        assert "s3cr3t" not in str(record.__dict__)
        assert "refresh-me" not in str(record.__dict__)
