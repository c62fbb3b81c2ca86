"""
Restore module for Sentinela Backup.

This module validates snapshots and writes them back into persistence:
- IntegrityValidator: required fields, format migrations, lockout check
- RestoreApplier: sequential collection writes with audit logging
- RestoreService: the boundary that turns input bytes into a RestoreResult

Invariants:
    - Invalid snapshots never mutate persistence
    - Every restore attempt leaves exactly one audit entry
"""

from .applier import RestoreApplier, RestoreResult, merge_audit_logs
from .service import RestoreService
from .validator import IntegrityValidator

__all__ = [
    "IntegrityValidator",
    "RestoreApplier",
    "RestoreResult",
    "RestoreService",
    "merge_audit_logs",
]
