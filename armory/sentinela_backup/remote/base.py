"""
Base protocol and types for remote object store adapters.

This module defines the RemoteStore protocol every adapter implements,
along with the session object, remote file projection and the cancellation
token threaded through every network step.

Invariants:
    - A RemoteSession is created by authenticate() and passed explicitly to
      every call; adapters keep no process-wide token
    - resolve_folder() is idempotent: at most one create per path segment
    - list_files() returns newest first
    - No adapter retries internally; every failure raises RemoteError
    - Every network call is bounded by a timeout

How to change safely:
    - Protocol changes require updating all adapters and the in-memory double
    - Add new capabilities as optional methods
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
    TYPE_CHECKING,
)

from ..errors import CycleCancelledError

if TYPE_CHECKING:
    from ..config import RemoteConfig

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation signal checked before each network call.

    Example:
        >>> cancel = CancellationToken()
        >>> cancel.cancel()
        >>> cancel.raise_if_cancelled("upload")  # raises CycleCancelledError
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, step: str) -> None:
        if self._event.is_set():
            raise CycleCancelledError(step)


def check_cancelled(cancel: Optional[CancellationToken], step: str) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled(step)


@dataclass(frozen=True)
class RemoteFile:
    """Read-only projection of an archive stored remotely.

    Attributes:
        id: Remote identifier (Drive file id, S3 key)
        name: File name
        created_time: ISO instant the remote reports for creation
        size: Size in bytes, if reported
    """

    id: str
    name: str
    created_time: str
    size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdTime": self.created_time,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RemoteFile:
        size = data.get("size")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            created_time=str(data.get("createdTime", "")),
            size=int(size) if size not in (None, "") else None,
        )


def newest_first(files: Sequence[RemoteFile]) -> List[RemoteFile]:
    return sorted(files, key=lambda f: f.created_time, reverse=True)


@dataclass
class RemoteSession:
    """Authenticated context for one sequence of remote calls.

    Created by authenticate(), discarded with close() when the cycle ends or
    any step fails.

    Attributes:
        token: Bearer token (or backend-specific credential label)
        created_at: Unix time the session was created
        expires_at: Unix time the token stops being valid, if known
        client: Backend-specific handle (e.g. an S3 client)
    """

    token: str
    created_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None
    client: Any = None
    _closer: Optional[Callable[[], Awaitable[None]]] = field(default=None, repr=False)
    closed: bool = False

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.time() >= self.expires_at

    async def close(self) -> None:
        """Release the session. Closer failures are logged, never raised."""
        if self.closed:
            return
        self.closed = True
        if self._closer is None:
            return
        try:
            await self._closer()
        except Exception as e:
            logger.warning(f"Closing remote session failed: {e}", exc_info=True)


@runtime_checkable
class RemoteStore(Protocol):
    """Protocol for remote object store adapters.

    Example:
        >>> session = await store.authenticate()
        >>> folder_id = await store.resolve_folder(session, ["AppRoot", "Backups"])
        >>> await store.upload(session, folder_id, "backup.zip", data)
        >>> await session.close()
    """

    @abstractmethod
    async def authenticate(self, cancel: Optional[CancellationToken] = None) -> RemoteSession:
        """Obtain a session without user interaction.

        Raises:
            RemoteError: If no valid cached grant exists or the remote refuses it
        """
        ...

    @abstractmethod
    async def resolve_folder(
        self,
        session: RemoteSession,
        segments: Sequence[str],
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """Find or create each folder of the path in order; return the last id."""
        ...

    @abstractmethod
    async def upload(
        self,
        session: RemoteSession,
        folder_id: str,
        name: str,
        data: bytes,
        cancel: Optional[CancellationToken] = None,
    ) -> RemoteFile:
        ...

    @abstractmethod
    async def list_files(
        self,
        session: RemoteSession,
        folder_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> List[RemoteFile]:
        """Files in folder_id, most recently created first."""
        ...

    @abstractmethod
    async def download(
        self,
        session: RemoteSession,
        file_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> bytes:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources."""
        ...


def create_remote_store(config: RemoteConfig) -> Optional[RemoteStore]:
    """Create the remote store selected by configuration.

    Returns:
        The adapter, or None when no remote backend is configured

    Raises:
        ValueError: If the backend is not supported
    """
    from ..config import RemoteBackend

    if config.backend == RemoteBackend.NONE:
        return None
    if config.backend == RemoteBackend.DRIVE:
        from .drive import GoogleDriveStore

        return GoogleDriveStore.from_config(config)
    if config.backend == RemoteBackend.S3:
        from .s3 import S3RemoteStore

        return S3RemoteStore.from_config(config)
    if config.backend == RemoteBackend.MEMORY:
        from .memory import InMemoryRemoteStore

        return InMemoryRemoteStore()
    raise ValueError(f"Unsupported remote backend: {config.backend}")


__all__ = [
    "CancellationToken",
    "RemoteFile",
    "RemoteSession",
    "RemoteStore",
    "check_cancelled",
    "create_remote_store",
    "newest_first",
]
