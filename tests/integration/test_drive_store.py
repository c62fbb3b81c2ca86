"""
Integration tests for GoogleDriveStore against a fake Drive served through
httpx.MockTransport.

Tests cover:
- Silent refresh-token authentication
- Idempotent folder resolution (one create per segment)
- Multipart upload
- Listing newest first
- Download with alt=media
- HTTP errors, timeouts and cancellation mapped to RemoteError
"""

import json
import re
from urllib.parse import parse_qs

import httpx
import pytest

from armory.sentinela_backup.errors import CycleCancelledError, RemoteError
from armory.sentinela_backup.remote import CancellationToken, RemoteSession
from armory.sentinela_backup.remote.drive import FOLDER_MIME, GoogleDriveStore

FOLDER_PATH = ["App_Controle_Armamento", "Backups"]


class FakeDrive:
    """Just enough of the Drive v3 REST API for the adapter."""

    def __init__(self):
        self.folders = {}  # id -> (name, parent)
        self.files = {}  # id -> dict(meta, parent, content)
        self.requests = []
        self.folder_creates = []
        self.fail = {}  # (method, path) -> status
        self.timeout_paths = set()
        self._next = 0

    def new_id(self, prefix):
        self._next += 1
        return f"{prefix}{self._next}"

    def add_file(self, parent, name, created, content=b""):
        file_id = self.new_id("file")
        self.files[file_id] = {
            "meta": {"id": file_id, "name": name, "createdTime": created, "size": str(len(content))},
            "parent": parent,
            "content": content,
        }
        return file_id

    def handler(self, request):
        self.requests.append(request)
        path = request.url.path
        key = (request.method, path)

        if path in self.timeout_paths:
            raise httpx.ReadTimeout("timed out", request=request)
        if key in self.fail:
            return httpx.Response(self.fail[key], json={"error": {"message": "boom"}})

        if request.url.host == "oauth2.googleapis.com":
            form = parse_qs(request.content.decode())
            if form.get("grant_type") != ["refresh_token"] or form.get("refresh_token") != ["rt"]:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3599})

        if request.headers.get("Authorization") != "Bearer tok":
            return httpx.Response(401)

        if path == "/drive/v3/files" and request.method == "GET":
            return self.search(request)
        if path == "/drive/v3/files" and request.method == "POST":
            metadata = json.loads(request.content)
            folder_id = self.new_id("folder")
            parent = metadata["parents"][0] if metadata["parents"] else None
            self.folders[folder_id] = (metadata["name"], parent)
            self.folder_creates.append(metadata["name"])
            return httpx.Response(200, json={"id": folder_id})
        if path == "/upload/drive/v3/files" and request.method == "POST":
            assert request.url.params["uploadType"] == "multipart"
            match = re.search(rb'\{"name": .*?"parents": \[.*?\]\}', request.content)
            metadata = json.loads(match.group(0))
            file_id = self.add_file(
                metadata["parents"][0], metadata["name"], "2025-03-01T12:00:00.000Z", b"zip"
            )
            return httpx.Response(200, json=self.files[file_id]["meta"])
        if path.startswith("/drive/v3/files/") and request.method == "GET":
            assert request.url.params["alt"] == "media"
            stored = self.files.get(path.rsplit("/", 1)[1])
            if stored is None:
                return httpx.Response(404)
            return httpx.Response(200, content=stored["content"])
        return httpx.Response(404)

    def search(self, request):
        query = request.url.params["q"]
        parent_match = re.search(r"'([^']+)' in parents", query)
        parent = parent_match.group(1) if parent_match else None
        if f"mimeType='{FOLDER_MIME}'" in query:
            name = re.search(r"name='((?:[^'\\]|\\.)*)'", query).group(1)
            name = name.replace("\\'", "'").replace("\\\\", "\\")
            found = [
                {"id": fid, "name": fname}
                for fid, (fname, fparent) in self.folders.items()
                if fname == name and (parent is None or fparent == parent)
            ]
            return httpx.Response(200, json={"files": found})
        assert request.url.params["orderBy"] == "createdTime desc"
        # Deliberately unordered: the adapter sorts itself.
        found = [f["meta"] for f in self.files.values() if f["parent"] == parent]
        return httpx.Response(200, json={"files": found})


class TestGoogleDriveStore:
    """Integration tests for GoogleDriveStore."""

    @pytest.fixture
    def drive(self):
        return FakeDrive()

    @pytest.fixture
    def store(self, drive):
        return GoogleDriveStore(
            client_id="cid",
            client_secret="secret",
            refresh_token="rt",
            transport=httpx.MockTransport(drive.handler),
        )

    @pytest.fixture
    def session(self):
        return RemoteSession(token="tok")

    @pytest.mark.asyncio
    async def test_authenticate_with_refresh_token(self, store, drive):
        session = await store.authenticate()

        assert session.token == "tok"
        assert not session.expired
        form = parse_qs(drive.requests[0].content.decode())
        assert form["client_id"] == ["cid"]
        assert form["client_secret"] == ["secret"]

    @pytest.mark.asyncio
    async def test_authenticate_without_grant(self, drive):
        store = GoogleDriveStore(
            client_id="cid", transport=httpx.MockTransport(drive.handler)
        )

        with pytest.raises(RemoteError) as exc_info:
            await store.authenticate()

        assert exc_info.value.step == "authenticate"
        assert drive.requests == []

    @pytest.mark.asyncio
    async def test_rejected_grant(self, drive):
        store = GoogleDriveStore(
            client_id="cid", refresh_token="revoked", transport=httpx.MockTransport(drive.handler)
        )

        with pytest.raises(RemoteError) as exc_info:
            await store.authenticate()

        assert exc_info.value.status == 400

    @pytest.mark.asyncio
    async def test_resolve_creates_each_segment_once(self, store, drive, session):
        first = await store.resolve_folder(session, FOLDER_PATH)
        second = await store.resolve_folder(session, FOLDER_PATH)

        assert first == second
        assert drive.folder_creates == FOLDER_PATH
        root_id = next(fid for fid, (name, _) in drive.folders.items() if name == FOLDER_PATH[0])
        assert drive.folders[first] == ("Backups", root_id)

    @pytest.mark.asyncio
    async def test_resolve_finds_existing_folders(self, store, drive, session):
        drive.folders["root-x"] = ("App_Controle_Armamento", None)
        drive.folders["backups-x"] = ("Backups", "root-x")

        assert await store.resolve_folder(session, FOLDER_PATH) == "backups-x"
        assert drive.folder_creates == []

    @pytest.mark.asyncio
    async def test_resolve_escapes_quotes(self, store, drive, session):
        path = ["Arsenal D'Ávila", "Backups"]

        first = await store.resolve_folder(session, path)
        second = await store.resolve_folder(session, path)

        assert first == second
        assert drive.folder_creates == path

    @pytest.mark.asyncio
    async def test_upload(self, store, drive, session):
        folder_id = await store.resolve_folder(session, FOLDER_PATH)

        uploaded = await store.upload(session, folder_id, "backup_auto_x.zip", b"PK\x05\x06")

        assert uploaded.name == "backup_auto_x.zip"
        assert drive.files[uploaded.id]["parent"] == folder_id
        request = drive.requests[-1]
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b"PK\x05\x06" in request.content

    @pytest.mark.asyncio
    async def test_list_newest_first(self, store, drive, session):
        drive.add_file("f", "a.zip", "2025-01-01T00:00:00.000Z")
        drive.add_file("f", "c.zip", "2025-03-01T00:00:00.000Z")
        drive.add_file("f", "b.zip", "2025-02-01T00:00:00.000Z")
        drive.add_file("other", "x.zip", "2025-04-01T00:00:00.000Z")

        files = await store.list_files(session, "f")

        assert [f.name for f in files] == ["c.zip", "b.zip", "a.zip"]
        assert files[0].size == 0

    @pytest.mark.asyncio
    async def test_download(self, store, drive, session):
        file_id = drive.add_file("f", "a.zip", "2025-01-01T00:00:00.000Z", b"archive-bytes")

        assert await store.download(session, file_id) == b"archive-bytes"

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self, store, drive, session):
        drive.fail[("POST", "/upload/drive/v3/files")] = 503

        with pytest.raises(RemoteError) as exc_info:
            await store.upload(session, "f", "a.zip", b"x")

        assert exc_info.value.step == "upload"
        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_expired_token(self, store, session):
        with pytest.raises(RemoteError) as exc_info:
            await store.list_files(RemoteSession(token="stale"), "f")

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_timeout(self, store, drive, session):
        drive.timeout_paths.add("/drive/v3/files")

        with pytest.raises(RemoteError) as exc_info:
            await store.resolve_folder(session, FOLDER_PATH)

        assert exc_info.value.step == "resolve_folder"
        assert exc_info.value.status == "timeout"

    @pytest.mark.asyncio
    async def test_cancelled_before_request(self, store, drive, session):
        cancel = CancellationToken()
        cancel.cancel()

        with pytest.raises(CycleCancelledError):
            await store.resolve_folder(session, FOLDER_PATH, cancel)

        assert drive.requests == []
