"""
Restore boundary: input bytes, text or file in, RestoreResult out.

Restore flow:
    input -> ArchiveCodec.read_payload -> parse -> IntegrityValidator -> RestoreApplier

Invariants:
    - Nothing raised by the pipeline escapes; every outcome is a RestoreResult
    - Format and validation failures audit once and never reach the applier
    - Applier failures are audited by the applier itself
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..errors import BackupError, FormatError, PersistenceError, ValidationError
from ..models import AuditAction
from ..snapshot.codec import ArchiveCodec
from ..storage.repository import InventoryRepository
from .applier import RestoreApplier, RestoreResult
from .validator import IntegrityValidator

logger = logging.getLogger(__name__)


class RestoreService:
    """Runs the restore pipeline for one user action.

    Not safe to run concurrently with a backup cycle; BackupService
    serializes both behind one writer lock.

    Example:
        >>> service = RestoreService(repository, codec, validator, applier)
        >>> result = service.restore(Path("backup.zip").read_bytes(), "Sgt. Lima")
    """

    def __init__(
        self,
        repository: InventoryRepository,
        codec: ArchiveCodec,
        validator: IntegrityValidator,
        applier: RestoreApplier,
    ) -> None:
        self.repository = repository
        self.codec = codec
        self.validator = validator
        self.applier = applier

    def restore(self, data: bytes | str, initiator: str = "Sistema") -> RestoreResult:
        """Restore from a ZIP archive (bytes) or bare snapshot JSON (bytes or str)."""
        try:
            text = self.codec.read_payload(data)
            raw = self.codec.parse(text)
            document = self.validator.validate(raw)
        except FormatError as e:
            logger.warning(f"Restore rejected, unreadable input: {e}")
            self._audit(initiator, "Arquivo ilegível ou corrompido.")
            return RestoreResult.failure(
                reason=str(e), code=e.code, message="Erro ao ler arquivo de backup."
            )
        except ValidationError as e:
            logger.warning(f"Restore rejected: {e}", extra={"missing": e.missing})
            detail = "Arquivo inválido ou corrompido (falta estrutura básica)."
            if e.missing:
                detail = f"{detail} Campos ausentes: {', '.join(e.missing)}."
            self._audit(initiator, detail)
            return RestoreResult.failure(
                reason=str(e), code=e.code, message="Estrutura do arquivo inválida."
            )
        except Exception as e:
            logger.error(f"Restore failed before apply: {e}", exc_info=True)
            self._audit(initiator, "Falha inesperada ao processar arquivo de backup.")
            code = e.code if isinstance(e, BackupError) else "RESTORE_ERROR"
            return RestoreResult.failure(
                reason=str(e) or type(e).__name__,
                code=code,
                message="Erro ao processar arquivo de backup.",
            )

        return self.applier.apply(document, initiator)

    def restore_file(self, path: str | Path, initiator: str = "Sistema") -> RestoreResult:
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            logger.warning(f"Restore rejected, cannot read {path}: {e}")
            self._audit(initiator, "Falha na leitura do arquivo.")
            return RestoreResult.failure(
                reason=str(e), code="READ_ERROR", message="Falha na leitura do arquivo."
            )
        return self.restore(data, initiator)

    def _audit(self, initiator: str, details: str) -> None:
        try:
            self.repository.add_log(initiator, AuditAction.RESTORE_ERROR, details)
        except PersistenceError:
            logger.error("Could not record audit entry", exc_info=True)


__all__ = ["RestoreService"]
