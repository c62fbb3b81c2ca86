"""
Versioned snapshot schema.

A snapshot is a self-describing JSON document:

    {
        "version": "2.0.0",
        "timestamp": "2025-03-01T12:00:00.000Z",
        "domainState": {
            "materials": [...],
            "personnel": [...],
            "cautelas": [...],
            "logs": [...],
            "settings": {...}
        },
        "integrityHash": "sha256:..."
    }

Format 1.x (written by the first tracker release) kept the five collections
at the top level of the document. Documents are migrated one major version
at a time before they are validated against the current schema.

Invariants:
    - SNAPSHOT_FORMAT_VERSION is the only version the builder writes
    - Every older major version has exactly one migration to the next
    - Migrations never drop collections
    - The integrity hash is an identity marker, not a security control

How to change safely:
    - Bump the major version for any layout change
    - Add MIGRATIONS[old_major] that lifts old documents to old_major + 1
    - Keep restoring old archives in the test suite
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ValidationError

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = "2.0.0"

COLLECTION_KEYS = ("materials", "personnel", "cautelas", "logs", "settings")


class DomainState(BaseModel):
    """The tracker's persisted collections, opaque to this subsystem."""

    model_config = ConfigDict(extra="allow")

    materials: list[Any]
    personnel: list[Any] = Field(default_factory=list)
    cautelas: list[Any] = Field(default_factory=list)
    logs: list[dict[str, Any]] = Field(default_factory=list)
    settings: dict[str, Any]


class SnapshotDocument(BaseModel):
    """A versioned capture of all persisted collections.

    Attributes:
        version: Snapshot format version the document was written with
        timestamp: ISO instant the snapshot was taken
        domain_state: The collections
        integrity_hash: Coarse identity marker over domain_state
    """

    model_config = ConfigDict(populate_by_name=True)

    version: str = Field(min_length=1)
    timestamp: str = ""
    domain_state: DomainState = Field(alias="domainState")
    integrity_hash: str = Field(default="", alias="integrityHash")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def compute_integrity_hash(state: DomainState) -> str:
    """SHA-256 over the canonical JSON form of the collections."""
    canonical = json.dumps(
        state.model_dump(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    return f"sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"


def format_major(version: Any) -> int | None:
    """Major component of a version string, None when absent or empty.

    Raises:
        ValidationError: If the version is present but not numeric
    """
    if version is None or version == "":
        return None
    head = str(version).strip().split(".", 1)[0]
    try:
        return int(head)
    except ValueError:
        raise ValidationError(f"Unrecognised snapshot version: {version!r}")


def _lift_collections(raw: dict[str, Any]) -> dict[str, Any]:
    """1.x -> 2.x: move top-level collections under domainState."""
    document = {key: value for key, value in raw.items() if key not in COLLECTION_KEYS}
    document["domainState"] = {key: raw[key] for key in COLLECTION_KEYS if key in raw}
    return document


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _lift_collections,
}

CURRENT_MAJOR = 2


def migrate(raw: dict[str, Any]) -> dict[str, Any]:
    """Bring a parsed document to the current layout.

    The version field is left as written so audit entries report the
    version of the archive that was actually restored.

    Raises:
        ValidationError: If the version is newer than this release understands
    """
    major = format_major(raw.get("version"))
    if major is None or major == CURRENT_MAJOR:
        return raw
    if major > CURRENT_MAJOR:
        raise ValidationError(
            f"Snapshot version {raw.get('version')} is newer than supported "
            f"({SNAPSHOT_FORMAT_VERSION})"
        )
    document = dict(raw)
    for step in range(max(major, 1), CURRENT_MAJOR):
        document = MIGRATIONS[step](document)
        logger.debug(f"Migrated snapshot layout from major version {step} to {step + 1}")
    return document


__all__ = [
    "COLLECTION_KEYS",
    "DomainState",
    "MIGRATIONS",
    "SNAPSHOT_FORMAT_VERSION",
    "SnapshotDocument",
    "compute_integrity_hash",
    "format_major",
    "migrate",
]
