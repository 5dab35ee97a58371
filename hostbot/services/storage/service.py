from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Awaitable, Callable

from hostbot.core.errors import NotFoundError, StorageError, ValidationError
from hostbot.db.locks import KeyedLock
from hostbot.services.quota.service import QuotaService, QuotaStats, quota_service
from hostbot.services.storage.provider import (StorageProvider, StoredObject, check_object_path,
                                               object_path, user_prefix)

log = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".html", ".zip")
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
MAX_FILE_NAME = 128

BytesSource = Callable[[], Awaitable[bytes]]


@dataclass(frozen=True)
class UploadResult:
    file_name: str
    url: str
    replaced: bool
    stats: QuotaStats | None


@dataclass(frozen=True)
class HostedFile:
    file_name: str
    url: str


def validate_file_name(file_name: str | None) -> str:
    name = (file_name or "").strip()
    if not name or len(name) > MAX_FILE_NAME or "/" in name or "\\" in name:
        raise ValidationError("invalid file name")
    if not name.lower().endswith(ALLOWED_EXTENSIONS):
        raise ValidationError("only .html and .zip files can be hosted")
    check_object_path(name)
    return name


def content_type_for(file_name: str, mime_type: str | None) -> str:
    if file_name.lower().endswith(".html"):
        return HTML_CONTENT_TYPE
    return mime_type or "application/zip"


class HostingService:
    """Uploads and deletions under uploads/<tg_id>/, kept in step with the quota.

    Each (user, file name) is handled by one caller at a time: the existence
    check, the quota change and the storage write run under ``file_locks``,
    so racing uploads or deletes of one name cannot count a file twice.
    """

    def __init__(self, provider: StorageProvider, quota: QuotaService | None = None) -> None:
        self.provider = provider
        self.quota = quota or quota_service
        self.file_locks = KeyedLock()

    async def upload(
        self,
        tg_id: int,
        file_name: str | None,
        mime_type: str | None,
        source: BytesSource,
        *,
        size: int | None = None,
        max_bytes: int | None = None,
    ) -> UploadResult:
        name = validate_file_name(file_name)
        if size is not None and max_bytes is not None and size > max_bytes:
            raise ValidationError(f"file is larger than {max_bytes // (1024 * 1024)} MB")
        path = object_path(tg_id, name)

        async with self.file_locks.hold(path):
            # Same name again replaces the hosted file and keeps using its slot.
            replaced = await self.provider.exists(path)
            stats = None if replaced else await self.quota.reserve_slot(tg_id)

            try:
                data = await source()
                if max_bytes is not None and len(data) > max_bytes:
                    raise ValidationError(f"file is larger than {max_bytes // (1024 * 1024)} MB")
                url = await self.provider.put_object(path, data, content_type_for(name, mime_type))
            except Exception as e:
                if not replaced:
                    await self.quota.release_slot(tg_id)
                if isinstance(e, (ValidationError, StorageError)):
                    raise
                log.exception("upload_failed tg_id=%s path=%s", tg_id, path)
                raise StorageError("upload failed") from e

        log.info("upload_done tg_id=%s path=%s replaced=%s", tg_id, path, replaced)
        return UploadResult(file_name=name, url=url, replaced=replaced, stats=stats)

    def file_url(self, obj: StoredObject) -> str:
        return self.provider.public_url(obj.name, token=obj.download_token)

    async def list_files(self, tg_id: int) -> list[HostedFile]:
        objects = await self.provider.list_objects(user_prefix(tg_id))
        return [HostedFile(file_name=o.file_name, url=self.file_url(o)) for o in objects]

    async def list_all(self) -> list[StoredObject]:
        return await self.provider.list_objects("uploads/")

    async def delete(self, tg_id: int, file_name: str | None) -> QuotaStats:
        name = (file_name or "").strip()
        if not name or "/" in name or "\\" in name:
            raise ValidationError("invalid file name")
        path = object_path(tg_id, name)
        async with self.file_locks.hold(path):
            if not await self.provider.exists(path) or not await self.provider.delete_object(path):
                raise NotFoundError(f"file {name} not found")
            stats = await self.quota.apply_delta(tg_id, -1)
        log.info("delete_done tg_id=%s path=%s", tg_id, path)
        return stats

    async def delete_all(self, tg_id: int) -> tuple[int, int]:
        """Delete every file of a user. Returns (deleted, failed)."""
        deleted = failed = 0
        for obj in await self.provider.list_objects(user_prefix(tg_id)):
            async with self.file_locks.hold(obj.name):
                try:
                    removed = await self.provider.delete_object(obj.name)
                except StorageError:
                    log.exception("delete_all_failed tg_id=%s path=%s", tg_id, obj.name)
                    failed += 1
                    continue
                if not removed:
                    # already gone through a concurrent delete, which gave the slot back
                    continue
                deleted += 1
                try:
                    await self.quota.apply_delta(tg_id, -1)
                except NotFoundError:
                    # files without an account row (e.g. uploaded before the quota existed)
                    pass
        log.info("delete_all_done tg_id=%s deleted=%s failed=%s", tg_id, deleted, failed)
        return deleted, failed

    @staticmethod
    def display_name(obj: StoredObject) -> str:
        return str(PurePosixPath(obj.name).relative_to("uploads"))
