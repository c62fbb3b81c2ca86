"""
Remote object store adapters.

Backends:
- GoogleDriveStore: Drive v3 REST over httpx (silent refresh-token auth)
- S3RemoteStore: S3 / MinIO over aiobotocore
- InMemoryRemoteStore: dictionaries, for tests and development

Use create_remote_store(config.remote) to build the configured adapter.
"""

from .base import (
    CancellationToken,
    RemoteFile,
    RemoteSession,
    RemoteStore,
    check_cancelled,
    create_remote_store,
    newest_first,
)
from .memory import InMemoryRemoteStore

__all__ = [
    "CancellationToken",
    "InMemoryRemoteStore",
    "RemoteFile",
    "RemoteSession",
    "RemoteStore",
    "check_cancelled",
    "create_remote_store",
    "newest_first",
]
