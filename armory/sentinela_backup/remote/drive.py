"""
Google Drive v3 adapter.

Protocol:
    - Silent authentication: refresh-token grant against the OAuth token
      endpoint; no user interaction is ever attempted
    - Folder search: GET /drive/v3/files?q=mimeType=folder and name and
      trashed=false [and parent in parents]
    - Folder create: POST /drive/v3/files with folder metadata
    - Upload: POST /upload/drive/v3/files?uploadType=multipart
      (metadata part + binary part)
    - List: GET /drive/v3/files?q=parent in parents and trashed=false
      &orderBy=createdTime desc
    - Download: GET /drive/v3/files/<id>?alt=media

Invariants:
    - Every request carries the session's bearer token
    - Every request is bounded by the client timeout
    - Non-2xx responses become RemoteError(step, status)
    - Cancellation is checked before every request
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import RemoteConfig
from ..errors import RemoteError
from .base import CancellationToken, RemoteFile, RemoteSession, check_cancelled, newest_first

logger = logging.getLogger(__name__)

FOLDER_MIME = "application/vnd.google-apps.folder"
ARCHIVE_MIME = "application/zip"
FILE_FIELDS = "id,name,createdTime,size"


def _quote(value: str) -> str:
    """Escape a value for use inside a Drive query string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveStore:
    """RemoteStore backed by the Google Drive REST API.

    Example:
        >>> store = GoogleDriveStore(client_id="...", refresh_token="...")
        >>> session = await store.authenticate()
        >>> folder_id = await store.resolve_folder(session, ["App_Controle_Armamento", "Backups"])
    """

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        api_base: str = "https://www.googleapis.com",
        upload_base: str = "https://www.googleapis.com/upload",
        token_url: str = "https://oauth2.googleapis.com/token",
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            client_id: OAuth client id
            client_secret: OAuth client secret, if the client type has one
            refresh_token: Cached grant used for silent authentication
            api_base: Drive REST base URL
            upload_base: Drive upload base URL
            token_url: OAuth token endpoint
            timeout_s: Timeout applied to every request
            transport: Optional httpx transport (tests)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.files_url = f"{api_base.rstrip('/')}/drive/v3/files"
        self.upload_url = f"{upload_base.rstrip('/')}/drive/v3/files"
        self.token_url = token_url
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_s), transport=transport)

    @classmethod
    def from_config(cls, config: RemoteConfig) -> GoogleDriveStore:
        return cls(
            client_id=config.drive_client_id or "",
            client_secret=config.drive_client_secret,
            refresh_token=config.drive_refresh_token,
            api_base=config.drive_api_base,
            upload_base=config.drive_upload_base,
            token_url=config.drive_token_url,
            timeout_s=config.request_timeout_s,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        step: str,
        method: str,
        url: str,
        session: Optional[RemoteSession] = None,
        cancel: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        check_cancelled(cancel, step)
        headers = dict(kwargs.pop("headers", {}) or {})
        if session is not None:
            headers["Authorization"] = f"Bearer {session.token}"
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteError(f"{step} timed out: {e}", step=step, status="timeout") from e
        except httpx.HTTPError as e:
            raise RemoteError(f"{step} failed: {e}", step=step) from e
        if response.is_error:
            raise RemoteError(
                f"{step} failed: HTTP {response.status_code} {response.reason_phrase}",
                step=step,
                status=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response, step: str) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteError(f"{step} returned invalid JSON", step=step, status=response.status_code) from e
        if not isinstance(payload, dict):
            raise RemoteError(f"{step} returned unexpected payload", step=step, status=response.status_code)
        return payload

    async def authenticate(self, cancel: Optional[CancellationToken] = None) -> RemoteSession:
        if not self.refresh_token:
            raise RemoteError(
                "No cached grant available for silent authentication", step="authenticate"
            )
        data = {
            "client_id": self.client_id,
            "refresh_token": self.refresh_token,
            "grant_type": "refresh_token",
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        response = await self._send("authenticate", "POST", self.token_url, cancel=cancel, data=data)
        payload = self._json(response, "authenticate")
        token = payload.get("access_token")
        if not token:
            raise RemoteError("Token endpoint returned no access token", step="authenticate")
        expires_in = float(payload.get("expires_in", 3600))
        logger.debug("Drive session created")
        return RemoteSession(token=token, expires_at=time.time() + expires_in - 60)

    async def _find_folder(
        self,
        session: RemoteSession,
        name: str,
        parent_id: Optional[str],
        cancel: Optional[CancellationToken],
    ) -> Optional[str]:
        query = f"mimeType='{FOLDER_MIME}' and name='{_quote(name)}' and trashed=false"
        if parent_id:
            query += f" and '{_quote(parent_id)}' in parents"
        response = await self._send(
            "resolve_folder",
            "GET",
            self.files_url,
            session,
            cancel,
            params={"q": query, "fields": "files(id,name)"},
        )
        files = self._json(response, "resolve_folder").get("files") or []
        return str(files[0]["id"]) if files else None

    async def _create_folder(
        self,
        session: RemoteSession,
        name: str,
        parent_id: Optional[str],
        cancel: Optional[CancellationToken],
    ) -> str:
        metadata = {
            "name": name,
            "mimeType": FOLDER_MIME,
            "parents": [parent_id] if parent_id else [],
        }
        response = await self._send(
            "resolve_folder",
            "POST",
            self.files_url,
            session,
            cancel,
            json=metadata,
            params={"fields": "id"},
        )
        folder_id = self._json(response, "resolve_folder").get("id")
        if not folder_id:
            raise RemoteError("Folder creation returned no id", step="resolve_folder")
        logger.info("Created remote folder", extra={"folder_name": name, "parent_id": parent_id})
        return str(folder_id)

    async def resolve_folder(
        self,
        session: RemoteSession,
        segments: Sequence[str],
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        if not segments:
            raise ValueError("Folder path must have at least one segment")
        parent_id: Optional[str] = None
        for segment in segments:
            folder_id = await self._find_folder(session, segment, parent_id, cancel)
            if folder_id is None:
                folder_id = await self._create_folder(session, segment, parent_id, cancel)
            parent_id = folder_id
        return parent_id

    async def upload(
        self,
        session: RemoteSession,
        folder_id: str,
        name: str,
        data: bytes,
        cancel: Optional[CancellationToken] = None,
    ) -> RemoteFile:
        metadata = {"name": name, "mimeType": ARCHIVE_MIME, "parents": [folder_id]}
        files = {
            "metadata": ("metadata", json.dumps(metadata).encode("utf-8"), "application/json; charset=UTF-8"),
            "file": (name, data, ARCHIVE_MIME),
        }
        response = await self._send(
            "upload",
            "POST",
            self.upload_url,
            session,
            cancel,
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            files=files,
        )
        payload = self._json(response, "upload")
        if not payload.get("id"):
            raise RemoteError("Upload returned no file id", step="upload")
        payload.setdefault("name", name)
        payload.setdefault("size", len(data))
        return RemoteFile.from_dict(payload)

    async def list_files(
        self,
        session: RemoteSession,
        folder_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> List[RemoteFile]:
        query = f"'{_quote(folder_id)}' in parents and trashed = false"
        response = await self._send(
            "list",
            "GET",
            self.files_url,
            session,
            cancel,
            params={
                "q": query,
                "fields": f"files({FILE_FIELDS})",
                "orderBy": "createdTime desc",
            },
        )
        files = self._json(response, "list").get("files") or []
        return newest_first([RemoteFile.from_dict(item) for item in files])

    async def download(
        self,
        session: RemoteSession,
        file_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> bytes:
        response = await self._send(
            "download",
            "GET",
            f"{self.files_url}/{file_id}",
            session,
            cancel,
            params={"alt": "media"},
        )
        return response.content


__all__ = ["GoogleDriveStore"]
