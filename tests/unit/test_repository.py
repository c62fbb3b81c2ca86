"""
Unit tests for InventoryRepository.

Tests cover:
- Settings defaults
- Audit log appends
- Backup policy read/write through the settings aggregate
"""

from datetime import datetime, timezone

from armory.sentinela_backup.models import AuditAction, BackupFrequency, BackupPolicy
from armory.sentinela_backup.storage import (
    DEFAULT_SETTINGS,
    InMemoryKeyValueStore,
    InventoryRepository,
    StorageKeys,
)


class TestInventoryRepository:
    """Tests for InventoryRepository."""

    def test_empty_store_reads_defaults(self):
        repo = InventoryRepository(InMemoryKeyValueStore())

        assert repo.get_materials() == []
        assert repo.get_logs() == []
        assert repo.get_settings() == DEFAULT_SETTINGS
        assert repo.get_admins() == []

    def test_settings_merge_over_defaults(self):
        repo = InventoryRepository(InMemoryKeyValueStore({StorageKeys.SETTINGS: {"theme": "dark"}}))

        settings = repo.get_settings()

        assert settings["theme"] == "dark"
        assert settings["institutionName"] == "Polícia Militar"

    def test_defaults_are_not_shared(self):
        repo = InventoryRepository(InMemoryKeyValueStore())

        repo.get_settings()["admins"].append({"id": "x"})

        assert DEFAULT_SETTINGS["admins"] == []

    def test_add_log_prepends(self, repository, now):
        entry = repository.add_log("Sgt. Lima", AuditAction.LOCAL_BACKUP, "ok")

        logs = repository.get_logs()
        assert logs[0] == {
            "id": entry.id,
            "armorerName": "Sgt. Lima",
            "action": "Backup Local",
            "details": "ok",
            "timestamp": "2025-03-01T12:00:00.000Z",
        }
        assert logs[1]["id"] == "l1"

    def test_backup_policy_from_settings(self, repository):
        policy = repository.get_backup_policy()

        assert policy.enabled is True
        assert policy.frequency == BackupFrequency.DAILY
        assert policy.last_backup_timestamp is None

    def test_invalid_policy_falls_back_to_default(self):
        store = InMemoryKeyValueStore(
            {StorageKeys.SETTINGS: {"backup": {"enabled": True, "frequency": "hourly"}}}
        )

        policy = InventoryRepository(store).get_backup_policy()

        assert policy == BackupPolicy()

    def test_save_backup_policy_uses_wire_names(self, repository, kv_store):
        policy = repository.get_backup_policy()
        policy.last_backup_timestamp = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        policy.remote_folder_id = "folder-2"

        repository.save_backup_policy(policy)

        settings = kv_store.get(StorageKeys.SETTINGS)
        assert settings["backup"] == {
            "enabled": True,
            "frequency": "daily",
            "lastBackupDate": "2025-03-01T12:00:00.000Z",
            "folderId": "folder-2",
        }
        assert settings["institutionName"] == "2º BPM"

    def test_policy_keeps_unknown_fields(self):
        """Fields the tracker UI adds later survive a scheduler write."""
        store = InMemoryKeyValueStore(
            {StorageKeys.SETTINGS: {"backup": {"enabled": True, "frequency": "weekly", "notify": True}}}
        )
        repo = InventoryRepository(store)

        repo.save_backup_policy(repo.get_backup_policy())

        assert store.get(StorageKeys.SETTINGS)["backup"]["notify"] is True
