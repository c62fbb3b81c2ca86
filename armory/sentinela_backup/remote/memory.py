"""
In-memory remote store for tests and local development.

Behaves like a folder-based remote: folders have ids and parents, uploads
land inside a folder, listing is newest first. Failures and slow steps can
be injected per step name.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..clock import Clock, to_iso, utc_now
from ..errors import RemoteError
from .base import CancellationToken, RemoteFile, RemoteSession, check_cancelled, newest_first

logger = logging.getLogger(__name__)


@dataclass
class _StoredFile:
    meta: RemoteFile
    folder_id: str
    data: bytes


class InMemoryRemoteStore:
    """RemoteStore double holding everything in dictionaries.

    Attributes:
        folders: folder id -> (name, parent id)
        created_folders: names of folders created, in order
        calls: step names in call order
        grant_available: False simulates a missing cached grant
        delays: step name -> seconds to sleep before answering
        close_error: raised by session close, when set
        sessions_closed: number of sessions closed
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self.folders: Dict[str, Tuple[str, Optional[str]]] = {}
        self._files: Dict[str, _StoredFile] = {}
        self._failures: Dict[str, Optional[int | str]] = {}
        self.created_folders: List[str] = []
        self.calls: List[str] = []
        self.grant_available = True
        self.delays: Dict[str, float] = {}
        self.close_error: Optional[Exception] = None
        self.sessions_closed = 0
        self.closed = False

    def fail(self, step: str, status: Optional[int | str] = 500) -> None:
        """Make every subsequent call of step raise RemoteError."""
        self._failures[step] = status

    def clear_failures(self) -> None:
        self._failures.clear()

    def files_in(self, folder_id: str) -> List[RemoteFile]:
        return [f.meta for f in self._files.values() if f.folder_id == folder_id]

    def content(self, file_id: str) -> bytes:
        return self._files[file_id].data

    def add_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        folder_id = f"folder-{next(self._ids)}"
        self.folders[folder_id] = (name, parent_id)
        return folder_id

    async def _enter(self, step: str, cancel: Optional[CancellationToken]) -> None:
        check_cancelled(cancel, step)
        self.calls.append(step)
        delay = self.delays.get(step)
        if delay:
            await asyncio.sleep(delay)
        if step in self._failures:
            raise RemoteError(f"Injected {step} failure", step=step, status=self._failures[step])

    async def _close_session(self) -> None:
        self.sessions_closed += 1
        if self.close_error is not None:
            raise self.close_error

    async def close(self) -> None:
        self.closed = True

    async def authenticate(self, cancel: Optional[CancellationToken] = None) -> RemoteSession:
        await self._enter("authenticate", cancel)
        if not self.grant_available:
            raise RemoteError("No cached grant available", step="authenticate", status=401)
        return RemoteSession(token=f"memory-{next(self._ids)}", _closer=self._close_session)

    async def resolve_folder(
        self,
        session: RemoteSession,
        segments: Sequence[str],
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        if not segments:
            raise ValueError("Folder path must have at least one segment")
        await self._enter("resolve_folder", cancel)
        parent_id: Optional[str] = None
        for segment in segments:
            found = next(
                (fid for fid, (name, parent) in self.folders.items()
                 if name == segment and parent == parent_id),
                None,
            )
            if found is None:
                found = self.add_folder(segment, parent_id)
                self.created_folders.append(segment)
            parent_id = found
        return parent_id

    async def upload(
        self,
        session: RemoteSession,
        folder_id: str,
        name: str,
        data: bytes,
        cancel: Optional[CancellationToken] = None,
    ) -> RemoteFile:
        await self._enter("upload", cancel)
        if folder_id not in self.folders:
            raise RemoteError(f"Folder {folder_id} not found", step="upload", status=404)
        meta = RemoteFile(
            id=f"file-{next(self._ids)}",
            name=name,
            created_time=to_iso(self._clock()),
            size=len(data),
        )
        self._files[meta.id] = _StoredFile(meta=meta, folder_id=folder_id, data=data)
        return meta

    async def list_files(
        self,
        session: RemoteSession,
        folder_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> List[RemoteFile]:
        await self._enter("list", cancel)
        return newest_first(self.files_in(folder_id))

    async def download(
        self,
        session: RemoteSession,
        file_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> bytes:
        await self._enter("download", cancel)
        stored = self._files.get(file_id)
        if stored is None:
            raise RemoteError(f"File {file_id} not found", step="download", status=404)
        return stored.data


__all__ = ["InMemoryRemoteStore"]
