"""
Archive codec for snapshots.

Archive format:
    backup_sentinela_<timestamp>.zip
        backup_sentinela.json     (the only member, DEFLATE compressed)

Restores accept either such an archive or the bare JSON text, so files
exported by hand (or by older releases) can still be restored.

Invariants:
    - encode() always produces exactly one member
    - decode(encode(d)) == serialize(d)
    - decode() returns the whole payload or raises FormatError, never a prefix
"""

from __future__ import annotations

import io
import json
import logging
import zipfile
import zlib
from datetime import datetime
from typing import Any

from ..clock import to_iso
from ..errors import FormatError
from .schema import SnapshotDocument

logger = logging.getLogger(__name__)

PAYLOAD_MEMBER = "backup_sentinela.json"


def archive_name(prefix: str, now: datetime) -> str:
    """File name for an archive taken at now, e.g. backup_auto_2025-03-01T12-00-00-000Z.zip."""
    stamp = to_iso(now).replace(":", "-").replace(".", "-")
    return f"{prefix}_{stamp}.zip"


class ArchiveCodec:
    """Packs snapshot documents into single-member ZIP archives and back.

    Example:
        >>> codec = ArchiveCodec()
        >>> data = codec.encode(document)
        >>> codec.decode(data) == codec.serialize(document)
        True
    """

    def __init__(self, member_name: str = PAYLOAD_MEMBER) -> None:
        self.member_name = member_name

    def serialize(self, document: SnapshotDocument) -> str:
        return json.dumps(document.to_wire(), ensure_ascii=False)

    def encode(self, document: SnapshotDocument) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr(self.member_name, self.serialize(document).encode("utf-8"))
        return buffer.getvalue()

    def decode(self, data: bytes) -> str:
        """Return the text of the first JSON member.

        Raises:
            FormatError: If the container is corrupt or has no JSON member
        """
        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as archive:
                member = next(
                    (
                        info
                        for info in archive.infolist()
                        if not info.is_dir() and info.filename.lower().endswith(".json")
                    ),
                    None,
                )
                if member is None:
                    raise FormatError("JSON file not found in ZIP")
                payload = archive.read(member)
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError) as e:
            # RuntimeError: encrypted members need a password we never have
            raise FormatError(f"Unreadable ZIP archive: {e}") from e

        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError(f"Snapshot member is not UTF-8 text: {e}") from e

    @staticmethod
    def is_archive(data: bytes) -> bool:
        return zipfile.is_zipfile(io.BytesIO(data))

    def read_payload(self, data: bytes | str) -> str:
        """Snapshot text from either an archive or bare JSON input.

        Raises:
            FormatError: If the input is neither
        """
        if isinstance(data, str):
            return data
        if self.is_archive(data):
            return self.decode(data)
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise FormatError("Input is neither a ZIP archive nor UTF-8 JSON text") from e

    def parse(self, text: str) -> dict[str, Any]:
        """Parse snapshot text into a mapping.

        Raises:
            FormatError: If the text is not a JSON object
        """
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise FormatError(f"Snapshot is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise FormatError("Snapshot JSON must be an object")
        return parsed


__all__ = ["ArchiveCodec", "PAYLOAD_MEMBER", "archive_name"]
