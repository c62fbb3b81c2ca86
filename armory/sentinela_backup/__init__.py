"""
Sentinela Backup - backup, restore and remote sync for the armory checkout tracker.

This package captures every persisted collection of the equipment-checkout
tracker (materials, personnel, checkout records, audit logs, settings) into
versioned snapshots, restores them safely, and replicates them to a remote
object store on a schedule.

Architecture:
    ┌──────────────┐     ┌──────────────┐     ┌──────────────┐
    │ KeyValueStore│────▶│  Snapshot    │────▶│ ArchiveCodec │
    │ (collections)│     │  Builder     │     │   (ZIP)      │
    └──────▲───────┘     └──────────────┘     └──────┬───────┘
           │                                         │
           │                              ┌──────────┴──────────┐
           │                              ▼                     ▼
    ┌──────┴───────┐     ┌──────────┐  local file        ┌─────────────┐
    │ Restore      │◀────│Integrity │◀── restore ────────│ RemoteStore │
    │ Applier      │     │Validator │                    │ (Drive/S3)  │
    └──────────────┘     └──────────┘                    └─────────────┘

Invariants:
    - Only structurally valid snapshots are ever applied
    - Every terminal outcome appends exactly one audit log entry
    - lastBackupDate advances only after a fully successful upload
    - Remote folder resolution never creates duplicate folders

How to change safely:
    - Snapshot format changes bump SNAPSHOT_FORMAT_VERSION and add a migration
    - New remote backends implement the RemoteStore protocol
    - Keep storage keys stable; they are shared with the tracker UI
"""

from ._version import __version__

__all__ = ["__version__"]
