"""
Snapshot module for Sentinela Backup.

This module turns the persisted collections into versioned documents and
packs them into ZIP archives:
- SnapshotBuilder: read collections, stamp version/timestamp/hash
- ArchiveCodec: single-member ZIP container, bare-JSON fallback on read
- schema: strict pydantic schema with per-version migrations

Invariants:
    - Building a snapshot never writes to persistence
    - Only the current format version is ever written
"""

from .builder import SnapshotBuilder
from .codec import ArchiveCodec, archive_name
from .schema import SNAPSHOT_FORMAT_VERSION, DomainState, SnapshotDocument, migrate

__all__ = [
    "ArchiveCodec",
    "DomainState",
    "SNAPSHOT_FORMAT_VERSION",
    "SnapshotBuilder",
    "SnapshotDocument",
    "archive_name",
    "migrate",
]
