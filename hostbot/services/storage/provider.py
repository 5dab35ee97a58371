from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import quote

import aiohttp
import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2.service_account import Credentials

from hostbot.core.errors import StorageError, ValidationError

log = logging.getLogger(__name__)

DOWNLOAD_TOKEN_KEY = "firebaseStorageDownloadTokens"


@dataclass(frozen=True)
class StoredObject:
    name: str  # full object path, e.g. uploads/42/index.html
    size: int | None = None
    content_type: str | None = None
    download_token: str | None = None

    @property
    def file_name(self) -> str:
        return PurePosixPath(self.name).name


def object_path(tg_id: int, file_name: str) -> str:
    return f"uploads/{int(tg_id)}/{file_name}"


def user_prefix(tg_id: int) -> str:
    return f"uploads/{int(tg_id)}/"


def check_object_path(path: str) -> str:
    p = PurePosixPath(path)
    if p.is_absolute() or any(part in ("", ".", "..") for part in p.parts):
        raise ValidationError("invalid file name")
    return str(p)


class StorageProvider:
    """Object storage the bot publishes uploads to."""

    name = "base"

    async def put_object(self, path: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError

    async def list_objects(self, prefix: str) -> list[StoredObject]:
        raise NotImplementedError

    async def delete_object(self, path: str) -> bool:
        """Remove the object; False when there was nothing to remove."""
        raise NotImplementedError

    async def exists(self, path: str) -> bool:
        raise NotImplementedError

    def public_url(self, path: str, *, token: str | None = None) -> str:
        raise NotImplementedError


class LocalStorageProvider(StorageProvider):
    """Files on local disk; links point at whatever serves ``root``.

    Used for development and tests.
    """

    name = "local"

    def __init__(self, root: str | os.PathLike, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _fs_path(self, path: str) -> Path:
        return self.root / check_object_path(path)

    async def put_object(self, path: str, data: bytes, content_type: str) -> str:
        fs = self._fs_path(path)
        try:
            await asyncio.to_thread(self._write, fs, data)
        except OSError as e:
            raise StorageError(f"write failed: {path}") from e
        return self.public_url(path)

    @staticmethod
    def _write(fs: Path, data: bytes) -> None:
        fs.parent.mkdir(parents=True, exist_ok=True)
        tmp = fs.with_name(fs.name + ".part")
        tmp.write_bytes(data)
        tmp.replace(fs)

    async def list_objects(self, prefix: str) -> list[StoredObject]:
        return await asyncio.to_thread(self._list, prefix)

    def _list(self, prefix: str) -> list[StoredObject]:
        if not self.root.exists():
            return []
        out: list[StoredObject] = []
        for fs in sorted(self.root.rglob("*")):
            if not fs.is_file() or fs.name.endswith(".part"):
                continue
            name = fs.relative_to(self.root).as_posix()
            if name.startswith(prefix):
                out.append(StoredObject(name=name, size=fs.stat().st_size))
        return out

    async def delete_object(self, path: str) -> bool:
        fs = self._fs_path(path)
        try:
            await asyncio.to_thread(fs.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"delete failed: {path}") from e
        return True

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._fs_path(path).is_file)

    def public_url(self, path: str, *, token: str | None = None) -> str:
        return f"{self.public_base_url}/{quote(check_object_path(path))}"


class FirebaseStorageProvider(StorageProvider):
    """Google Cloud Storage bucket of a Firebase project (JSON API).

    Requests are signed with a service-account credential that refreshes its
    own access token. Every object carries a ``firebaseStorageDownloadTokens``
    metadata entry; links use the Firebase download URL format with that token
    so they render in the browser without public bucket rules.
    """

    name = "firebase"

    API_BASE = "https://storage.googleapis.com/storage/v1"
    UPLOAD_BASE = "https://storage.googleapis.com/upload/storage/v1"
    DOWNLOAD_BASE = "https://firebasestorage.googleapis.com/v0"
    SCOPES = ("https://www.googleapis.com/auth/devstorage.read_write",)

    def __init__(self, bucket: str, credentials: Credentials | None, *, timeout_seconds: int = 60) -> None:
        if not bucket:
            raise RuntimeError("STORAGE_BUCKET is required for the firebase storage provider")
        self.bucket = bucket
        self.credentials = credentials
        self.timeout_seconds = timeout_seconds
        self._refresh_lock = asyncio.Lock()

    async def _headers(self) -> dict[str, str]:
        if self.credentials is None:
            return {}
        async with self._refresh_lock:
            if not self.credentials.valid:
                try:
                    # google-auth refreshes over blocking HTTP
                    await asyncio.to_thread(self.credentials.refresh, google.auth.transport.requests.Request())
                except google.auth.exceptions.GoogleAuthError as e:
                    raise StorageError(f"storage credentials refresh failed: {e}") from e
                log.info("storage_token_refreshed bucket=%s", self.bucket)
        return {"Authorization": f"Bearer {self.credentials.token}"}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: Any = None,
        allow_404: bool = False,
    ) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        hdrs = await self._headers()
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, params=params, data=data, headers=hdrs) as resp:
                    if allow_404 and resp.status == 404:
                        return None
                    try:
                        body = await resp.json(content_type=None)
                    except Exception:
                        body = await resp.text()
                    if resp.status >= 400:
                        raise StorageError(f"storage {method} {resp.status}: {body}")
                    return body if body is not None else {}
        except aiohttp.ClientError as e:
            raise StorageError(f"storage {method} failed: {e}") from e

    def _object_url(self, path: str) -> str:
        return f"{self.API_BASE}/b/{self.bucket}/o/{quote(path, safe='')}"

    async def put_object(self, path: str, data: bytes, content_type: str) -> str:
        path = check_object_path(path)
        token = uuid.uuid4().hex
        # multipart/related: object metadata first, then the bytes
        with aiohttp.MultipartWriter("related") as body:
            body.append_json(
                {
                    "name": path,
                    "contentType": content_type,
                    "cacheControl": "no-cache",
                    "metadata": {DOWNLOAD_TOKEN_KEY: token},
                }
            )
            body.append(data, {"Content-Type": content_type})
            await self._request(
                "POST",
                f"{self.UPLOAD_BASE}/b/{self.bucket}/o",
                params={"uploadType": "multipart"},
                data=body,
            )
        log.info("storage_put bucket=%s path=%s bytes=%s", self.bucket, path, len(data))
        return self.public_url(path, token=token)

    async def list_objects(self, prefix: str) -> list[StoredObject]:
        out: list[StoredObject] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {"prefix": prefix}
            if page_token:
                params["pageToken"] = page_token
            body = await self._request("GET", f"{self.API_BASE}/b/{self.bucket}/o", params=params)
            for item in (body or {}).get("items", []):
                size = item.get("size")
                tokens = (item.get("metadata") or {}).get(DOWNLOAD_TOKEN_KEY) or ""
                out.append(
                    StoredObject(
                        name=item["name"],
                        size=int(size) if size is not None else None,
                        content_type=item.get("contentType"),
                        # the metadata value may hold several comma-separated tokens
                        download_token=tokens.split(",")[0] or None,
                    )
                )
            page_token = (body or {}).get("nextPageToken")
            if not page_token:
                return out

    async def delete_object(self, path: str) -> bool:
        body = await self._request("DELETE", self._object_url(check_object_path(path)), allow_404=True)
        log.info("storage_delete bucket=%s path=%s found=%s", self.bucket, path, body is not None)
        return body is not None

    async def exists(self, path: str) -> bool:
        body = await self._request("GET", self._object_url(check_object_path(path)), allow_404=True)
        return body is not None

    def public_url(self, path: str, *, token: str | None = None) -> str:
        url = f"{self.DOWNLOAD_BASE}/b/{self.bucket}/o/{quote(path, safe='')}?alt=media"
        if token:
            url += f"&token={quote(token, safe='')}"
        return url


def load_credentials(settings) -> Credentials | None:
    """Service-account credentials from STORAGE_CREDENTIALS (JSON) or STORAGE_CREDENTIALS_FILE."""
    scopes = FirebaseStorageProvider.SCOPES
    try:
        if settings.storage_credentials:
            info = json.loads(settings.storage_credentials)
            return Credentials.from_service_account_info(info, scopes=scopes)
        if settings.storage_credentials_file:
            return Credentials.from_service_account_file(settings.storage_credentials_file, scopes=scopes)
    except (ValueError, OSError) as e:
        raise RuntimeError(f"Invalid storage service-account credentials: {e}") from e
    return None


def build_provider(settings) -> StorageProvider:
    kind = (settings.storage_provider or "local").lower()
    if kind == "firebase":
        credentials = load_credentials(settings)
        if credentials is None:
            raise RuntimeError("STORAGE_CREDENTIALS or STORAGE_CREDENTIALS_FILE is required for firebase storage")
        return FirebaseStorageProvider(settings.storage_bucket, credentials)
    if kind == "local":
        return LocalStorageProvider(settings.storage_local_dir, settings.storage_public_base_url)
    raise RuntimeError(f"Unsupported STORAGE_PROVIDER: {kind}")
