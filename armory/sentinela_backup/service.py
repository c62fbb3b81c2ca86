"""
BackupService - the subsystem boundary.

Wires persistence, snapshot, restore, remote and scheduler components
together and exposes the operations the tracker UI and the CLI call:
- create_local_backup: archive written to a directory
- restore_file / restore_bytes / restore_text: user-initiated restore
- list_remote_backups / download_remote_backup / restore_remote_backup
- run_auto_backup_check / upload_backup_now
- start_auto_backup / stop_auto_backup: periodic checks under the writer lock

Invariants:
    - One writer lock serializes restores against backups
    - A check that finds a cycle in flight returns immediately
    - Blocking SQLite and ZIP work runs in the default executor
    - No exception escapes; every operation returns a result value

How to change safely:
    - New operations that write persistence must take the writer lock
    - Keep audit entry texts stable; the tracker UI shows them verbatim
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

from .clock import Clock, utc_now
from .config import BackupConfig
from .errors import BackupError, PersistenceError, RemoteError
from .models import AuditAction
from .remote.base import CancellationToken, RemoteFile, RemoteStore, create_remote_store
from .restore.applier import RestoreApplier, RestoreResult
from .restore.service import RestoreService
from .restore.validator import IntegrityValidator
from .scheduler.auto_backup import AutoBackupScheduler, CycleResult, CycleState
from .snapshot.builder import SnapshotBuilder
from .snapshot.codec import ArchiveCodec, archive_name
from .storage.base import KeyValueStore
from .storage.repository import InventoryRepository
from .storage.sqlite import SqliteKeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCAL_ARCHIVE_PREFIX = "backup_sentinela"


@dataclass
class LocalBackupResult:
    """Outcome of create_local_backup().

    Attributes:
        success: Whether the archive was written
        path: Final archive path (on success)
        size: Archive size in bytes (on success)
        error: Failure description (on failure)
    """

    success: bool
    path: Optional[Path] = None
    size: Optional[int] = None
    error: Optional[str] = None


@dataclass
class RemoteResult:
    """Outcome of a remote list or download.

    Attributes:
        success: Whether the call completed
        files: Listed archives, newest first (list)
        data: Downloaded bytes (download)
        step: Remote step that failed
        error: Failure description
    """

    success: bool
    files: List[RemoteFile] = field(default_factory=list)
    data: Optional[bytes] = None
    step: Optional[str] = None
    error: Optional[str] = None


class BackupService:
    """Facade over the backup and restore subsystem.

    Example:
        >>> service = BackupService.from_config(BackupConfig.from_env())
        >>> result = await service.create_local_backup("/media/usb", "Sgt. Lima")
        >>> result.path
        PosixPath('/media/usb/backup_sentinela_2025-03-01T12-00-00-000Z.zip')
    """

    def __init__(
        self,
        repository: InventoryRepository,
        remote: Optional[RemoteStore] = None,
        config: Optional[BackupConfig] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.config = config or BackupConfig()
        self.repository = repository
        self.remote = remote
        self.clock = clock

        self.codec = ArchiveCodec()
        self.builder = SnapshotBuilder(repository, clock)
        self.validator = IntegrityValidator(repository, self.config.restore.lockout_policy)
        self.applier = RestoreApplier(repository, self.config.restore.audit_mode)
        self.restore_service = RestoreService(repository, self.codec, self.validator, self.applier)
        self.scheduler = AutoBackupScheduler(
            repository,
            self.builder,
            self.codec,
            remote,
            folder_path=self.config.remote.folder_path,
            step_timeout_s=self.config.scheduler.step_timeout_s,
            initiator=self.config.scheduler.initiator,
            archive_prefix=self.config.scheduler.archive_prefix,
            clock=clock,
        )
        self._writer_lock = asyncio.Lock()
        self._auto_running = False
        self._auto_stop = asyncio.Event()

    @classmethod
    def from_config(
        cls,
        config: BackupConfig,
        store: Optional[KeyValueStore] = None,
        remote: Optional[RemoteStore] = None,
    ) -> BackupService:
        """Build the service from configuration.

        Args:
            config: Subsystem configuration
            store: Key-value store override (defaults to SQLite at config.db_path)
            remote: Remote store override (defaults to create_remote_store)
        """
        if store is None:
            store = SqliteKeyValueStore(config.db_path, config.storage.busy_timeout_ms)
        if remote is None:
            remote = create_remote_store(config.remote)
        return cls(InventoryRepository(store), remote=remote, config=config)

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()

    async def _in_executor(self, fn: Callable[..., T], *args) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    # Local backup

    def _write_archive(self, dest_dir: Path) -> tuple[Path, int]:
        document = self.builder.build()
        data = self.codec.encode(document)
        dest_dir.mkdir(parents=True, exist_ok=True)
        target = dest_dir / archive_name(LOCAL_ARCHIVE_PREFIX, self.clock())
        fd, tmp_name = tempfile.mkstemp(dir=dest_dir, prefix=".backup_", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        return target, len(data)

    async def create_local_backup(
        self, dest_dir: str | Path, initiator: str = "Sistema"
    ) -> LocalBackupResult:
        """Write a snapshot archive into dest_dir and audit the outcome."""
        async with self._writer_lock:
            try:
                path, size = await self._in_executor(self._write_archive, Path(dest_dir))
            except Exception as e:
                logger.error(f"Local backup failed: {e}", exc_info=True)
                await self._in_executor(
                    self._audit, initiator, AuditAction.LOCAL_BACKUP_ERROR,
                    "Falha ao gerar arquivo ZIP local.",
                )
                return LocalBackupResult(success=False, error=str(e))

            await self._in_executor(
                self._audit, initiator, AuditAction.LOCAL_BACKUP,
                f"Backup criado e salvo em {path.name}. Tamanho: {size} bytes",
            )
            logger.info("Local backup written", extra={"path": str(path), "size": size})
            return LocalBackupResult(success=True, path=path, size=size)

    # Restore

    async def restore_bytes(self, data: bytes, initiator: str = "Sistema") -> RestoreResult:
        async with self._writer_lock:
            return await self._in_executor(self.restore_service.restore, data, initiator)

    async def restore_text(self, text: str, initiator: str = "Sistema") -> RestoreResult:
        async with self._writer_lock:
            return await self._in_executor(self.restore_service.restore, text, initiator)

    async def restore_file(self, path: str | Path, initiator: str = "Sistema") -> RestoreResult:
        async with self._writer_lock:
            return await self._in_executor(self.restore_service.restore_file, path, initiator)

    # Remote

    async def _remote_call(
        self,
        step: str,
        call: Callable[[], Awaitable[T]],
        cancel: Optional[CancellationToken],
    ) -> T:
        if cancel is not None:
            cancel.raise_if_cancelled(step)
        try:
            return await asyncio.wait_for(call(), timeout=self.config.scheduler.step_timeout_s)
        except asyncio.TimeoutError as e:
            raise RemoteError(f"{step} timed out", step=step, status="timeout") from e

    async def _with_folder(
        self,
        action: Callable[..., Awaitable[T]],
        cancel: Optional[CancellationToken],
    ) -> T:
        if self.remote is None:
            raise RemoteError("No remote backend configured", step="authenticate")
        remote = self.remote
        session = await self._remote_call("authenticate", lambda: remote.authenticate(cancel), cancel)
        try:
            policy = await self._in_executor(self.repository.get_backup_policy)
            folder_id = policy.remote_folder_id
            if not folder_id:
                folder_id = await self._remote_call(
                    "resolve_folder",
                    lambda: remote.resolve_folder(session, self.config.remote.folder_path, cancel),
                    cancel,
                )
            return await action(remote, session, folder_id)
        finally:
            await session.close()

    async def list_remote_backups(self, cancel: Optional[CancellationToken] = None) -> RemoteResult:
        """Archives in the remote backups folder, newest first."""

        async def action(remote: RemoteStore, session, folder_id: str) -> List[RemoteFile]:
            return await self._remote_call(
                "list", lambda: remote.list_files(session, folder_id, cancel), cancel
            )

        try:
            files = await self._with_folder(action, cancel)
        except BackupError as e:
            step = getattr(e, "step", None)
            logger.warning(f"Listing remote backups failed: {e}", extra={"step": step})
            return RemoteResult(success=False, step=step, error=str(e))
        return RemoteResult(success=True, files=files)

    async def download_remote_backup(
        self, file_id: str, cancel: Optional[CancellationToken] = None
    ) -> RemoteResult:
        if self.remote is None:
            return RemoteResult(success=False, step="authenticate", error="No remote backend configured")
        remote = self.remote
        try:
            session = await self._remote_call(
                "authenticate", lambda: remote.authenticate(cancel), cancel
            )
            try:
                data = await self._remote_call(
                    "download", lambda: remote.download(session, file_id, cancel), cancel
                )
            finally:
                await session.close()
        except BackupError as e:
            step = getattr(e, "step", None)
            logger.warning(f"Downloading {file_id} failed: {e}", extra={"step": step})
            return RemoteResult(success=False, step=step, error=str(e))
        return RemoteResult(success=True, data=data)

    async def restore_remote_backup(
        self,
        file_id: str,
        initiator: str = "Sistema",
        cancel: Optional[CancellationToken] = None,
    ) -> RestoreResult:
        """Download a remote archive and restore it."""
        download = await self.download_remote_backup(file_id, cancel)
        if not download.success or download.data is None:
            await self._in_executor(
                self._audit, initiator, AuditAction.RESTORE_ERROR,
                "Falha ao baixar backup do armazenamento remoto.",
            )
            return RestoreResult.failure(
                reason=download.error or "download failed",
                code="REMOTE_ERROR",
                message="Erro ao baixar arquivo de backup.",
            )
        return await self.restore_bytes(download.data, initiator)

    # Auto backup

    async def run_auto_backup_check(
        self,
        now: Optional[datetime] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> CycleResult:
        """Run the scheduler's due-ness check and, if due, one cycle."""
        if self.scheduler.in_flight:
            return CycleResult(state=CycleState.IDLE, skipped="in_flight")
        async with self._writer_lock:
            return await self.scheduler.run_check(now=now, cancel=cancel)

    async def upload_backup_now(
        self,
        initiator: str = "Sistema",
        cancel: Optional[CancellationToken] = None,
    ) -> CycleResult:
        """Run one remote backup cycle regardless of due-ness."""
        if self.scheduler.in_flight:
            return CycleResult(state=CycleState.IDLE, skipped="in_flight")
        async with self._writer_lock:
            return await self.scheduler.run_check(cancel=cancel, force=True, initiator=initiator)

    async def start_auto_backup(
        self,
        interval_s: float,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        """Run run_auto_backup_check every interval_s seconds until stopped.

        Each check goes through the writer lock, so restores started while
        the loop runs wait for the current cycle.
        """
        if self._auto_running:
            logger.warning("Auto-backup loop already running")
            return
        self._auto_running = True
        self._auto_stop.clear()
        logger.info("Starting auto-backup loop", extra={"interval_s": interval_s})
        try:
            while self._auto_running:
                await self.run_auto_backup_check(cancel=cancel)
                try:
                    await asyncio.wait_for(self._auto_stop.wait(), timeout=interval_s)
                except asyncio.TimeoutError:
                    continue
        except asyncio.CancelledError:
            logger.info("Auto-backup loop cancelled")
        finally:
            self._auto_running = False

    async def stop_auto_backup(self) -> None:
        self._auto_running = False
        self._auto_stop.set()
        logger.info("Stopping auto-backup loop")

    def _audit(self, initiator: str, action: str, details: str) -> None:
        try:
            self.repository.add_log(initiator, action, details)
        except PersistenceError:
            logger.error("Could not record audit entry", exc_info=True, extra={"action": action})


__all__ = ["BackupService", "LocalBackupResult", "RemoteResult"]
