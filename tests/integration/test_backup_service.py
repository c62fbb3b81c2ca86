"""
Integration tests for the BackupService facade.

Tests cover:
- Local archives written atomically and audited
- Restore from bytes, text and file
- Remote list / download / restore through the in-memory remote
- Writer lock: restore and the periodic loop wait for the current writer
- Session close failures never replace a result
- Construction from configuration
"""

import asyncio
import zipfile

import pytest

from armory.sentinela_backup.config import (
    BackupConfig,
    RemoteBackend,
    RemoteConfig,
    StorageConfig,
)
from armory.sentinela_backup.models import AuditAction
from armory.sentinela_backup.remote import InMemoryRemoteStore
from armory.sentinela_backup.scheduler import CycleState
from armory.sentinela_backup.service import BackupService
from armory.sentinela_backup.storage import (
    InMemoryKeyValueStore,
    InventoryRepository,
    SqliteKeyValueStore,
    StorageKeys,
)


class TestBackupService:
    """Integration tests for BackupService."""

    @pytest.fixture
    def remote(self):
        return InMemoryRemoteStore()

    @pytest.fixture
    def service(self, repository, remote, clock):
        return BackupService(repository, remote=remote, config=BackupConfig(), clock=clock)

    @pytest.mark.asyncio
    async def test_create_local_backup(self, service, repository, tmp_path):
        result = await service.create_local_backup(tmp_path / "usb", "Sgt. Lima")

        assert result.success
        assert result.path.name == "backup_sentinela_2025-03-01T12-00-00-000Z.zip"
        assert zipfile.is_zipfile(result.path)
        assert result.size == result.path.stat().st_size
        assert [p.name for p in (tmp_path / "usb").iterdir()] == [result.path.name]

        entry = repository.get_logs()[0]
        assert entry["action"] == AuditAction.LOCAL_BACKUP
        assert f"Tamanho: {result.size} bytes" in entry["details"]

    @pytest.mark.asyncio
    async def test_local_backup_failure_is_audited(self, service, repository, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")

        result = await service.create_local_backup(blocker, "Sgt. Lima")

        assert not result.success
        assert result.error
        entry = repository.get_logs()[0]
        assert entry["action"] == AuditAction.LOCAL_BACKUP_ERROR
        assert entry["details"] == "Falha ao gerar arquivo ZIP local."

    @pytest.mark.asyncio
    async def test_local_backup_of_malformed_collection(self, clock, tmp_path):
        """A collection stored with an unexpected shape fails as a result."""
        repository = InventoryRepository(
            InMemoryKeyValueStore({StorageKeys.MATERIALS: {"m1": {"name": "Pistola .40"}}}),
            clock=clock,
        )
        service = BackupService(repository, config=BackupConfig(), clock=clock)

        result = await service.create_local_backup(tmp_path / "usb", "Sgt. Lima")

        assert not result.success
        assert "materials" in result.error
        assert not (tmp_path / "usb").exists()
        entry = repository.get_logs()[0]
        assert entry["action"] == AuditAction.LOCAL_BACKUP_ERROR
        assert len(repository.get_logs()) == 1

    @pytest.mark.asyncio
    async def test_local_backup_restores_elsewhere(self, service, tmp_path, clock, seed):
        backup = await service.create_local_backup(tmp_path)
        target = InventoryRepository(InMemoryKeyValueStore(), clock=clock)
        other = BackupService(target, config=BackupConfig(), clock=clock)

        result = await other.restore_file(backup.path, "Sgt. Lima")

        assert result.success
        assert target.get_materials() == seed["sentinela_materials"]

    @pytest.mark.asyncio
    async def test_restore_text_and_bytes(self, service, repository):
        text = service.codec.serialize(service.builder.build())

        assert (await service.restore_text(text)).success
        assert (await service.restore_bytes(text.encode("utf-8"))).success
        assert not (await service.restore_bytes(b"\x00\x01garbage")).success

    @pytest.mark.asyncio
    async def test_remote_round_trip(self, service, repository, seed):
        cycle = await service.upload_backup_now("Sgt. Lima")
        assert cycle.state == CycleState.DONE

        listing = await service.list_remote_backups()
        assert listing.success
        assert [f.id for f in listing.files] == [cycle.remote_file.id]

        repository.save_materials([])
        result = await service.restore_remote_backup(cycle.remote_file.id, "Sgt. Lima")

        assert result.success
        assert repository.get_materials() == seed["sentinela_materials"]

    @pytest.mark.asyncio
    async def test_download_unknown_file(self, service, repository):
        result = await service.restore_remote_backup("file-404", "Sgt. Lima")

        assert not result.success
        assert result.code == "REMOTE_ERROR"
        entry = repository.get_logs()[0]
        assert entry["action"] == AuditAction.RESTORE_ERROR
        assert "baixar" in entry["details"]

    @pytest.mark.asyncio
    async def test_list_failure_is_a_result(self, service, remote):
        remote.grant_available = False

        listing = await service.list_remote_backups()

        assert not listing.success
        assert listing.step == "authenticate"

    @pytest.mark.asyncio
    async def test_remote_calls_without_backend(self, repository):
        service = BackupService(repository, remote=None, config=BackupConfig())

        assert not (await service.list_remote_backups()).success
        assert not (await service.download_remote_backup("x")).success
        assert (await service.run_auto_backup_check()).skipped == "no_remote"

    @pytest.mark.asyncio
    async def test_auto_check_runs_when_due(self, service, repository, now):
        result = await service.run_auto_backup_check()

        assert result.state == CycleState.DONE
        assert repository.get_backup_policy().last_backup_timestamp == now

    @pytest.mark.asyncio
    async def test_restore_waits_for_in_flight_cycle(self, service, remote, repository):
        """Persistence has one writer: restore starts after the cycle ends."""
        text = service.codec.serialize(service.builder.build())
        remote.delays["upload"] = 0.2

        cycle_task = asyncio.create_task(service.run_auto_backup_check())
        await asyncio.sleep(0.05)
        skipped = await service.run_auto_backup_check()
        restore_task = asyncio.create_task(service.restore_text(text, "Sgt. Lima"))
        await asyncio.sleep(0.05)

        assert skipped.skipped == "in_flight"
        assert not restore_task.done()

        cycle = await cycle_task
        restored = await restore_task

        assert cycle.state == CycleState.DONE
        assert restored.success
        assert repository.get_logs()[0]["action"] == AuditAction.RESTORE

    @pytest.mark.asyncio
    async def test_auto_backup_loop_takes_writer_lock(self, service, remote, repository, now):
        """The periodic loop waits for a writer holding the lock."""
        await service._writer_lock.acquire()
        loop_task = asyncio.create_task(service.start_auto_backup(0.01))
        await asyncio.sleep(0.05)

        assert remote.calls == []
        assert not loop_task.done()

        service._writer_lock.release()
        for _ in range(50):
            if repository.get_backup_policy().last_backup_timestamp is not None:
                break
            await asyncio.sleep(0.01)
        await service.stop_auto_backup()
        await asyncio.wait_for(loop_task, timeout=1)

        assert repository.get_backup_policy().last_backup_timestamp == now
        assert remote.calls.count("upload") == 1

    @pytest.mark.asyncio
    async def test_stop_auto_backup_interrupts_interval(self, service):
        loop_task = asyncio.create_task(service.start_auto_backup(3600))
        await asyncio.sleep(0.05)

        await service.stop_auto_backup()

        await asyncio.wait_for(loop_task, timeout=1)

    @pytest.mark.asyncio
    async def test_session_close_failure_is_not_raised(self, service, remote):
        remote.close_error = ConnectionResetError("connection reset by peer")

        listing = await service.list_remote_backups()
        download = await service.download_remote_backup("file-404")

        assert listing.success
        assert not download.success
        assert download.step == "download"
        assert remote.sessions_closed == 2


class TestBackupServiceFromConfig:
    """Tests for BackupService.from_config."""

    @pytest.mark.asyncio
    async def test_builds_sqlite_and_memory_remote(self, tmp_path):
        config = BackupConfig(
            storage=StorageConfig(data_dir=str(tmp_path)),
            remote=RemoteConfig(backend=RemoteBackend.MEMORY),
        )

        service = BackupService.from_config(config)

        assert isinstance(service.repository.store, SqliteKeyValueStore)
        assert isinstance(service.remote, InMemoryRemoteStore)
        assert service.scheduler.folder_path == ["App_Controle_Armamento", "Backups"]
        await service.close()

    def test_no_backend(self, tmp_path):
        config = BackupConfig(storage=StorageConfig(data_dir=str(tmp_path)))

        assert BackupService.from_config(config).remote is None
