"""
Applies validated snapshots back into persistence.

The five collections are written one after another. The write is NOT
transactional across collections: if persistence fails partway, earlier
collections hold restored data and later ones keep their old contents. The
failure audit entry says so.

Invariants:
    - Only documents that passed IntegrityValidator reach apply()
    - Write order is materials, personnel, cautelas, logs, settings
    - Every call appends exactly one audit entry (success or failure)
    - AuditMode.REPLACE discards pre-restore history; MERGE keeps it
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..config import AuditMode
from ..errors import PersistenceError
from ..models import AuditAction
from ..snapshot.schema import SnapshotDocument
from ..storage.repository import InventoryRepository

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Outcome of a restore attempt.

    Attributes:
        success: Whether every collection was written
        version: Version of the restored snapshot (on success)
        reason: Why the restore failed (on failure)
        code: Error code of the failure, see errors.py
        message: Short user-facing message
    """

    success: bool
    version: str | None = None
    reason: str | None = None
    code: str | None = None
    message: str = ""

    @classmethod
    def ok(cls, version: str) -> RestoreResult:
        return cls(success=True, version=version, message="Dados restaurados com sucesso.")

    @classmethod
    def failure(cls, reason: str, code: str, message: str) -> RestoreResult:
        return cls(success=False, reason=reason, code=code, message=message)


def merge_audit_logs(
    restored: list[dict[str, Any]], current: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Union of both histories by entry id, newest first."""
    merged: dict[str, dict[str, Any]] = {}
    anonymous: list[dict[str, Any]] = []
    for entry in [*restored, *current]:
        if not isinstance(entry, dict):
            continue
        entry_id = entry.get("id")
        if entry_id is None:
            anonymous.append(entry)
        elif str(entry_id) not in merged:
            merged[str(entry_id)] = entry
    combined = [*merged.values(), *anonymous]
    return sorted(combined, key=lambda e: str(e.get("timestamp", "")), reverse=True)


class RestoreApplier:
    """Writes a snapshot's collections to persistence and audits the outcome.

    Example:
        >>> applier = RestoreApplier(repository)
        >>> result = applier.apply(document, initiator="Sgt. Lima")
        >>> result.success
        True
    """

    def __init__(
        self,
        repository: InventoryRepository,
        audit_mode: AuditMode = AuditMode.REPLACE,
    ) -> None:
        self.repository = repository
        self.audit_mode = audit_mode

    def apply(self, document: SnapshotDocument, initiator: str = "Sistema") -> RestoreResult:
        repo = self.repository
        state = document.domain_state

        logs = state.logs
        if self.audit_mode == AuditMode.MERGE:
            logs = merge_audit_logs(state.logs, repo.get_logs())

        try:
            repo.save_materials(state.materials)
            repo.save_personnel(state.personnel)
            repo.save_cautelas(state.cautelas)
            repo.save_logs(logs)
            repo.save_settings(state.settings)
        except PersistenceError as e:
            logger.error(
                f"Restore write failed: {e}",
                extra={"key": e.key, "version": document.version},
            )
            self._audit(
                initiator,
                AuditAction.RESTORE_ERROR,
                f"Falha ao gravar '{e.key}' durante a restauração. "
                "Os dados podem estar parcialmente restaurados.",
            )
            return RestoreResult.failure(
                reason=str(e),
                code=e.code,
                message="Erro crítico ao gravar dados restaurados.",
            )

        self._audit(
            initiator,
            AuditAction.RESTORE,
            f"Sistema restaurado com sucesso. Versão do backup: {document.version}",
        )
        logger.info(
            "Snapshot restored",
            extra={"version": document.version, "timestamp": document.timestamp},
        )
        return RestoreResult.ok(document.version)

    def _audit(self, initiator: str, action: str, details: str) -> None:
        try:
            self.repository.add_log(initiator, action, details)
        except PersistenceError:
            logger.error(
                "Could not record audit entry",
                exc_info=True,
                extra={"action": action, "details": details},
            )


__all__ = ["RestoreApplier", "RestoreResult", "merge_audit_logs"]
