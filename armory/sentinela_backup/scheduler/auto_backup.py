"""
Auto-backup scheduler.

Decides whether a remote backup is due and drives one cycle end-to-end:

    Idle -> Authenticating -> Resolving -> Uploading -> Done
                  |               |            |
                  +---------------+------------+--> Failed

Resolving is skipped when the policy caches the backups folder id. Building
and encoding the snapshot happen inside the Uploading step, so a build
failure is reported as an Uploading failure.

Invariants:
    - At most one cycle is in flight; a check that finds one running is a no-op
    - lastBackupDate advances only when the upload succeeded
    - Every cycle that starts ends with exactly one audit entry
    - run_check() never raises; the outcome is a CycleResult
    - state keeps the terminal DONE/FAILED of the last cycle until the next check
    - The cancellation token is checked before every network call, and
      every network step is bounded by step_timeout_s

How to change safely:
    - New steps need a CycleState and an entry in the failure audit text
    - Keep policy writes confined to the success path (and the stale
      folder id reset)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from ..clock import Clock, utc_now
from ..errors import BackupError, CycleCancelledError, PersistenceError, RemoteError
from ..models import AuditAction, BackupPolicy
from ..remote.base import CancellationToken, RemoteFile, RemoteStore, check_cancelled
from ..snapshot.builder import SnapshotBuilder
from ..snapshot.codec import ArchiveCodec, archive_name
from ..storage.repository import InventoryRepository
from .policy import is_due

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CycleState(Enum):
    """Where a backup cycle is, or where it stopped."""

    IDLE = "Idle"
    AUTHENTICATING = "Authenticating"
    RESOLVING = "Resolving"
    UPLOADING = "Uploading"
    DONE = "Done"
    FAILED = "Failed"


@dataclass
class CycleResult:
    """Outcome of one scheduling check.

    Attributes:
        state: DONE, FAILED, or IDLE when no cycle ran
        step: Step that failed (FAILED only)
        error: Failure description (FAILED only)
        remote_file: Uploaded archive (DONE only)
        skipped: Why no cycle ran (IDLE only): in_flight, no_remote, not_due
    """

    state: CycleState
    step: Optional[CycleState] = None
    error: Optional[str] = None
    remote_file: Optional[RemoteFile] = None
    skipped: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == CycleState.DONE


class AutoBackupScheduler:
    """Runs due-ness checks and remote backup cycles.

    Example:
        >>> scheduler = AutoBackupScheduler(repository, builder, codec, remote, folder_path)
        >>> result = await scheduler.run_check()
        >>> result.state
        <CycleState.DONE: 'Done'>
    """

    def __init__(
        self,
        repository: InventoryRepository,
        builder: SnapshotBuilder,
        codec: ArchiveCodec,
        remote: Optional[RemoteStore],
        folder_path: Sequence[str],
        step_timeout_s: float = 120.0,
        initiator: str = "Automático",
        archive_prefix: str = "backup_auto",
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the scheduler.

        Args:
            repository: Persistence access (policy, audit log)
            builder: Builds the snapshot uploaded by each cycle
            codec: Packs the snapshot into an archive
            remote: Remote store, or None when replication is off
            folder_path: Remote folder chain, root first
            step_timeout_s: Upper bound for each network step
            initiator: Actor recorded in audit entries of automatic cycles
            archive_prefix: Uploaded file name prefix
            clock: Time source
        """
        self.repository = repository
        self.builder = builder
        self.codec = codec
        self.remote = remote
        self.folder_path = list(folder_path)
        self.step_timeout_s = step_timeout_s
        self.initiator = initiator
        self.archive_prefix = archive_prefix
        self.clock = clock

        self._in_flight = False
        # Step in progress; DONE or FAILED after a cycle until the next check
        self.state = CycleState.IDLE

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def run_check(
        self,
        now: Optional[datetime] = None,
        cancel: Optional[CancellationToken] = None,
        force: bool = False,
        initiator: Optional[str] = None,
    ) -> CycleResult:
        """Run one cycle if it is due (or forced).

        Args:
            now: Instant used for due-ness and the new lastBackupDate
            cancel: Cancellation signal honored before each network call
            force: Skip the due-ness check (manual "upload now")
            initiator: Actor for audit entries, defaults to the scheduler's
        """
        if self._in_flight:
            logger.info("Backup cycle already in flight, skipping check")
            return CycleResult(state=CycleState.IDLE, skipped="in_flight")

        self._in_flight = True
        self.state = CycleState.IDLE
        try:
            if self.remote is None:
                return CycleResult(state=CycleState.IDLE, skipped="no_remote")

            now = now or self.clock()
            loop = asyncio.get_running_loop()
            policy = await loop.run_in_executor(None, self.repository.get_backup_policy)
            if not force and not is_due(policy, now):
                logger.debug(
                    "Backup not due",
                    extra={
                        "frequency": policy.frequency.value,
                        "enabled": policy.enabled,
                        "last_backup": str(policy.last_backup_timestamp),
                    },
                )
                return CycleResult(state=CycleState.IDLE, skipped="not_due")

            logger.info("Starting backup cycle", extra={"forced": force})
            return await self._run_cycle(policy, now, cancel, initiator or self.initiator)
        finally:
            self._in_flight = False

    async def _step(
        self,
        state: CycleState,
        call: Callable[[], Awaitable[T]],
        cancel: Optional[CancellationToken],
    ) -> T:
        check_cancelled(cancel, state.value)
        try:
            return await asyncio.wait_for(call(), timeout=self.step_timeout_s)
        except asyncio.TimeoutError as e:
            raise RemoteError(
                f"{state.value} exceeded {self.step_timeout_s}s",
                step=state.value,
                status="timeout",
            ) from e

    def _build_archive(self, now: datetime) -> tuple[str, bytes]:
        document = self.builder.build()
        return archive_name(self.archive_prefix, now), self.codec.encode(document)

    async def _run_cycle(
        self,
        policy: BackupPolicy,
        now: datetime,
        cancel: Optional[CancellationToken],
        initiator: str,
    ) -> CycleResult:
        assert self.remote is not None
        remote = self.remote
        loop = asyncio.get_running_loop()
        session = None
        cached_folder = policy.remote_folder_id
        self.state = CycleState.AUTHENTICATING
        try:
            session = await self._step(
                CycleState.AUTHENTICATING, lambda: remote.authenticate(cancel), cancel
            )

            folder_id = cached_folder
            if not folder_id:
                self.state = CycleState.RESOLVING
                folder_id = await self._step(
                    CycleState.RESOLVING,
                    lambda: remote.resolve_folder(session, self.folder_path, cancel),
                    cancel,
                )

            self.state = CycleState.UPLOADING
            name, data = await loop.run_in_executor(None, self._build_archive, now)
            remote_file = await self._step(
                CycleState.UPLOADING,
                lambda: remote.upload(session, folder_id, name, data, cancel),
                cancel,
            )

            policy.last_backup_timestamp = now
            policy.remote_folder_id = folder_id
            await loop.run_in_executor(None, self.repository.save_backup_policy, policy)
        except Exception as e:
            return await self._fail(policy, self.state, e, cached_folder, initiator)
        finally:
            if session is not None:
                await session.close()

        await loop.run_in_executor(
            None,
            self._audit,
            initiator,
            AuditAction.REMOTE_BACKUP,
            f"Backup automático enviado. ID: {remote_file.id}",
        )
        logger.info(
            "Backup cycle done",
            extra={"file_id": remote_file.id, "file_name": remote_file.name, "size": remote_file.size},
        )
        self.state = CycleState.DONE
        return CycleResult(state=CycleState.DONE, remote_file=remote_file)

    async def _fail(
        self,
        policy: BackupPolicy,
        step: CycleState,
        error: Exception,
        cached_folder: Optional[str],
        initiator: str,
    ) -> CycleResult:
        loop = asyncio.get_running_loop()
        if isinstance(error, (BackupError, asyncio.TimeoutError)):
            logger.warning(f"Backup cycle failed at {step.value}: {error}")
        else:
            logger.error(f"Backup cycle failed at {step.value}: {error}", exc_info=True)

        if (
            step == CycleState.UPLOADING
            and cached_folder
            and isinstance(error, RemoteError)
            and error.status == 404
        ):
            # The remote no longer knows the cached folder; next cycle re-resolves.
            policy.remote_folder_id = None
            try:
                await loop.run_in_executor(None, self.repository.save_backup_policy, policy)
            except PersistenceError:
                logger.error("Could not clear stale remote folder id", exc_info=True)

        if isinstance(error, CycleCancelledError):
            reason = "Operação cancelada."
        else:
            reason = str(error) or type(error).__name__
        await loop.run_in_executor(
            None,
            self._audit,
            initiator,
            AuditAction.REMOTE_BACKUP_ERROR,
            f"Falha no envio do backup remoto. Etapa: {step.value}. Motivo: {reason}",
        )
        self.state = CycleState.FAILED
        return CycleResult(state=CycleState.FAILED, step=step, error=reason)

    def _audit(self, initiator: str, action: str, details: str) -> None:
        try:
            self.repository.add_log(initiator, action, details)
        except PersistenceError:
            logger.error(
                "Could not record audit entry",
                exc_info=True,
                extra={"action": action, "details": details},
            )


__all__ = ["AutoBackupScheduler", "CycleResult", "CycleState"]
