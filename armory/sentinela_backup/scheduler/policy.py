"""Due-ness rule for the auto-backup cycle."""

from __future__ import annotations

from datetime import datetime

from ..models import BackupFrequency, BackupPolicy

# Minimum hours since the last successful cycle, per frequency.
THRESHOLD_HOURS = {
    BackupFrequency.DAILY: 24,
    BackupFrequency.WEEKLY: 168,
    BackupFrequency.MONTHLY: 720,
}


def hours_since(moment: datetime, now: datetime) -> float:
    return (now - moment).total_seconds() / 3600


def is_due(policy: BackupPolicy, now: datetime) -> bool:
    """Whether a backup cycle should run at now.

    never and disabled policies are never due. Otherwise a policy that has
    no successful cycle yet, or runs on every boot, is due; the periodic
    frequencies are due once their threshold has elapsed.
    """
    if policy.frequency == BackupFrequency.NEVER or not policy.enabled:
        return False
    if policy.last_backup_timestamp is None:
        return True
    if policy.frequency == BackupFrequency.ON_BOOT:
        return True
    threshold = THRESHOLD_HOURS.get(policy.frequency)
    if threshold is None:
        return False
    return hours_since(policy.last_backup_timestamp, now) >= threshold


__all__ = ["THRESHOLD_HOURS", "hours_since", "is_due"]
