"""
Scheduler module for Sentinela Backup.

- is_due: frequency / last-success due-ness rule
- AutoBackupScheduler: single-flight remote backup cycle
"""

from .auto_backup import AutoBackupScheduler, CycleResult, CycleState
from .policy import THRESHOLD_HOURS, is_due

__all__ = [
    "AutoBackupScheduler",
    "CycleResult",
    "CycleState",
    "THRESHOLD_HOURS",
    "is_due",
]
