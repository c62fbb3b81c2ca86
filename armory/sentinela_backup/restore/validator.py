"""
Structural validation of snapshots before restore.

Invariants:
    - A document is accepted only with a non-empty version and a domainState
      holding at least materials and settings
    - Every missing required field is named, not just the first one
    - The lockout check only blocks under LockoutPolicy.BLOCK
    - Validation never touches persistence except to read current admins
"""

from __future__ import annotations

import logging
from typing import Any

import pydantic

from ..config import LockoutPolicy
from ..errors import LockoutRiskError, ValidationError
from ..snapshot.schema import SnapshotDocument, compute_integrity_hash, migrate
from ..storage.repository import InventoryRepository

logger = logging.getLogger(__name__)

REQUIRED_COLLECTIONS = ("materials", "settings")


class IntegrityValidator:
    """Checks parsed snapshot mappings and returns typed documents.

    Example:
        >>> validator = IntegrityValidator(repository)
        >>> document = validator.validate(codec.parse(text))
    """

    def __init__(
        self,
        repository: InventoryRepository,
        lockout_policy: LockoutPolicy = LockoutPolicy.WARN,
    ) -> None:
        self.repository = repository
        self.lockout_policy = lockout_policy

    def validate(self, raw: dict[str, Any]) -> SnapshotDocument:
        """Validate and type a parsed snapshot.

        Args:
            raw: Parsed JSON object, any supported format version

        Returns:
            The migrated, typed document

        Raises:
            ValidationError: If required fields are missing or malformed
            LockoutRiskError: If no admin would remain and policy is BLOCK
        """
        document = migrate(raw)

        missing = []
        if not document.get("version"):
            missing.append("version")
        state = document.get("domainState")
        if not isinstance(state, dict):
            state = {}
        missing.extend(key for key in REQUIRED_COLLECTIONS if state.get(key) is None)
        if missing:
            raise ValidationError(
                f"Snapshot is missing required fields: {', '.join(missing)}",
                missing=missing,
            )

        try:
            parsed = SnapshotDocument.model_validate(document)
        except pydantic.ValidationError as e:
            errors = [(".".join(str(part) for part in err["loc"]), err["type"]) for err in e.errors()]
            raise ValidationError(
                f"Snapshot has malformed fields: {', '.join(sorted({loc for loc, _ in errors}))}",
                missing=[loc for loc, kind in errors if kind == "missing"],
            ) from e

        self._check_integrity_hash(parsed)
        self._check_lockout(parsed)
        return parsed

    def _check_integrity_hash(self, document: SnapshotDocument) -> None:
        # Older archives carry a timestamp here; only sha256 markers are compared.
        marker = document.integrity_hash
        if not marker.startswith("sha256:"):
            return
        if compute_integrity_hash(document.domain_state) != marker:
            logger.warning(
                "Snapshot integrity marker does not match its contents",
                extra={"version": document.version, "timestamp": document.timestamp},
            )

    def _check_lockout(self, document: SnapshotDocument) -> None:
        incoming = document.domain_state.settings.get("admins")
        if incoming:
            return
        if self.repository.get_admins():
            return
        message = "Backup has no admins and none are configured locally"
        if self.lockout_policy == LockoutPolicy.BLOCK:
            raise LockoutRiskError(message)
        logger.warning(f"{message}. Be careful.")


__all__ = ["IntegrityValidator", "REQUIRED_COLLECTIONS"]
