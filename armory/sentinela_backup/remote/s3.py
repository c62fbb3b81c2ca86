"""
S3-compatible adapter (AWS S3, MinIO).

Folders are modeled as key prefixes with an empty marker object
("<prefix>/") so that resolve_folder() has a find-or-create step like Drive.
A folder id is the full prefix including the trailing slash; a file id is
the object key.

Invariants:
    - The aiobotocore client lives in the session and is closed with it
    - Connect and read timeouts come from RemoteConfig.request_timeout_s
    - ClientError / BotoCoreError become RemoteError(step, status)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..clock import to_iso
from ..config import RemoteConfig
from ..errors import RemoteError
from .base import CancellationToken, RemoteFile, RemoteSession, check_cancelled, newest_first

logger = logging.getLogger(__name__)


def _status(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", "unknown"))


class S3RemoteStore:
    """RemoteStore backed by an S3 bucket.

    Example:
        >>> store = S3RemoteStore(bucket="sentinela-backups")
        >>> session = await store.authenticate()
        >>> prefix = await store.resolve_folder(session, ["App_Controle_Armamento", "Backups"])
    """

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        timeout_s: float = 30.0,
        session_factory: Callable[[], Any] = get_session,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.timeout_s = timeout_s
        self._session_factory = session_factory

    @classmethod
    def from_config(cls, config: RemoteConfig) -> S3RemoteStore:
        return cls(
            bucket=config.s3_bucket or "",
            region=config.s3_region,
            endpoint_url=config.s3_endpoint,
            access_key_id=config.s3_access_key_id,
            secret_access_key=config.s3_secret_access_key,
            timeout_s=config.request_timeout_s,
        )

    async def close(self) -> None:
        # Clients are owned by sessions.
        return None

    async def authenticate(self, cancel: Optional[CancellationToken] = None) -> RemoteSession:
        check_cancelled(cancel, "authenticate")
        client_kwargs: dict[str, Any] = {
            "region_name": self.region,
            "config": AioConfig(
                connect_timeout=self.timeout_s,
                read_timeout=self.timeout_s,
                retries={"max_attempts": 1},
            ),
        }
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id:
            client_kwargs["aws_access_key_id"] = self.access_key_id
            client_kwargs["aws_secret_access_key"] = self.secret_access_key

        ctx = self._session_factory().create_client("s3", **client_kwargs)
        try:
            client = await ctx.__aenter__()
        except (ClientError, BotoCoreError) as e:
            raise RemoteError(f"Could not create S3 client: {e}", step="authenticate") from e

        async def closer() -> None:
            await ctx.__aexit__(None, None, None)

        session = RemoteSession(token=f"s3:{self.bucket}", client=client, _closer=closer)
        try:
            await client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            await session.close()
            raise RemoteError(
                f"Bucket {self.bucket} not accessible: {e}", step="authenticate", status=_status(e)
            ) from e
        except BotoCoreError as e:
            await session.close()
            raise RemoteError(f"S3 authentication failed: {e}", step="authenticate") from e
        return session

    async def _folder_exists(self, client: Any, marker: str) -> bool:
        try:
            await client.head_object(Bucket=self.bucket, Key=marker)
        except ClientError as e:
            if _status(e) in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    async def resolve_folder(
        self,
        session: RemoteSession,
        segments: Sequence[str],
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        if not segments:
            raise ValueError("Folder path must have at least one segment")
        client = session.client
        prefix = ""
        for segment in segments:
            check_cancelled(cancel, "resolve_folder")
            prefix = f"{prefix}{segment}/"
            try:
                if not await self._folder_exists(client, prefix):
                    await client.put_object(Bucket=self.bucket, Key=prefix, Body=b"")
                    logger.info("Created remote folder", extra={"prefix": prefix})
            except ClientError as e:
                raise RemoteError(
                    f"Could not resolve {prefix}: {e}", step="resolve_folder", status=_status(e)
                ) from e
            except BotoCoreError as e:
                raise RemoteError(f"Could not resolve {prefix}: {e}", step="resolve_folder") from e
        return prefix

    async def upload(
        self,
        session: RemoteSession,
        folder_id: str,
        name: str,
        data: bytes,
        cancel: Optional[CancellationToken] = None,
    ) -> RemoteFile:
        check_cancelled(cancel, "upload")
        key = f"{folder_id}{name}"
        try:
            await session.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType="application/zip",
            )
            head = await session.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise RemoteError(f"Upload of {key} failed: {e}", step="upload", status=_status(e)) from e
        except BotoCoreError as e:
            raise RemoteError(f"Upload of {key} failed: {e}", step="upload") from e
        return RemoteFile(
            id=key,
            name=name,
            created_time=to_iso(head["LastModified"]),
            size=int(head.get("ContentLength", len(data))),
        )

    async def list_files(
        self,
        session: RemoteSession,
        folder_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> List[RemoteFile]:
        files: List[RemoteFile] = []
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Prefix": folder_id, "Delimiter": "/"}
        while True:
            check_cancelled(cancel, "list")
            try:
                response = await session.client.list_objects_v2(**kwargs)
            except ClientError as e:
                raise RemoteError(f"Listing {folder_id} failed: {e}", step="list", status=_status(e)) from e
            except BotoCoreError as e:
                raise RemoteError(f"Listing {folder_id} failed: {e}", step="list") from e

            for obj in response.get("Contents", []):
                key = obj["Key"]
                if key == folder_id:
                    continue
                files.append(
                    RemoteFile(
                        id=key,
                        name=key[len(folder_id):],
                        created_time=to_iso(obj["LastModified"]),
                        size=int(obj.get("Size", 0)),
                    )
                )
            if not response.get("IsTruncated"):
                break
            kwargs["ContinuationToken"] = response["NextContinuationToken"]
        return newest_first(files)

    async def download(
        self,
        session: RemoteSession,
        file_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> bytes:
        check_cancelled(cancel, "download")
        try:
            response = await session.client.get_object(Bucket=self.bucket, Key=file_id)
            return await response["Body"].read()
        except ClientError as e:
            raise RemoteError(f"Download of {file_id} failed: {e}", step="download", status=_status(e)) from e
        except BotoCoreError as e:
            raise RemoteError(f"Download of {file_id} failed: {e}", step="download") from e


__all__ = ["S3RemoteStore"]
