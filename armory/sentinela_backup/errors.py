"""
Error types for the backup subsystem.

This module defines all exception types raised inside the subsystem:
- BackupError: Base exception
- FormatError: Archive unreadable or missing the snapshot member
- ValidationError: Snapshot missing required structural fields
- LockoutRiskError: Restore would leave no administrator (block policy)
- RemoteError: Authentication, network or remote API failure
- PersistenceError: A collection write failed
- CycleCancelledError: A cancellation signal was honored at a step boundary

Invariants:
    - All errors inherit from BackupError
    - Errors carry a code and details for programmatic handling
    - None of these escape the subsystem boundary; they become results
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class BackupError(Exception):
    """Base exception for all backup subsystem errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "BACKUP_ERROR"
        self.details = details or {}


class FormatError(BackupError):
    """Archive or payload could not be read.

    Raised when:
    - The container is not a valid ZIP file
    - No snapshot payload member exists
    - The payload is not valid UTF-8 / JSON
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="FORMAT_ERROR")


class ValidationError(BackupError):
    """Snapshot is structurally invalid.

    Attributes:
        missing: Names of the required fields that are absent
    """

    def __init__(
        self,
        message: str,
        missing: Optional[List[str]] = None,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"missing": list(missing or [])},
        )
        self.missing = list(missing or [])


class LockoutRiskError(ValidationError):
    """Restoring would leave the system without any administrator."""

    def __init__(self, message: str) -> None:
        super().__init__(message, missing=["settings.admins"], code="LOCKOUT_RISK")


class RemoteError(BackupError):
    """Remote object store call failed.

    Attributes:
        step: Remote operation that failed (authenticate, resolve_folder, ...)
        status: HTTP status or backend error code, None for transport errors
    """

    def __init__(
        self,
        message: str,
        step: str,
        status: Optional[int | str] = None,
    ) -> None:
        super().__init__(
            message,
            code="REMOTE_ERROR",
            details={"step": step, "status": status},
        )
        self.step = step
        self.status = status


class PersistenceError(BackupError):
    """Local persistence could not be written, or holds data that cannot be captured.

    Attributes:
        key: Storage key involved, if known
    """

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, code="PERSISTENCE_ERROR", details={"key": key})
        self.key = key


class CycleCancelledError(BackupError):
    """Cancellation was requested before a step started."""

    def __init__(self, step: str) -> None:
        super().__init__(f"Cancelled before {step}", code="CANCELLED", details={"step": step})
        self.step = step


__all__ = [
    "BackupError",
    "CycleCancelledError",
    "FormatError",
    "LockoutRiskError",
    "PersistenceError",
    "RemoteError",
    "ValidationError",
]
