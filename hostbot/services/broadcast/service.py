from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from aiogram.exceptions import TelegramRetryAfter
from aiogram.types import Message

from hostbot.core.errors import BroadcastBusyError, ValidationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BroadcastPayload:
    kind: str  # text | photo | video
    text: str | None = None
    file_id: str | None = None
    caption: str | None = None


@dataclass
class BroadcastResult:
    sent: int = 0
    failed: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.sent + len(self.failed)


def payload_from_message(message: Message) -> BroadcastPayload:
    if message.text:
        return BroadcastPayload(kind="text", text=message.text)
    if message.photo:
        # the last PhotoSize is the largest one
        return BroadcastPayload(kind="photo", file_id=message.photo[-1].file_id, caption=message.caption or None)
    if message.video:
        return BroadcastPayload(kind="video", file_id=message.video.file_id, caption=message.caption or None)
    raise ValidationError("only text, photo or video can be broadcast")


class BroadcastService:
    """One pending broadcast at a time.

    An admin arms the dispatcher, the next message they send becomes the
    payload. While a capture is armed by someone else, or a fan-out is still
    running, arming is rejected with BroadcastBusyError. The dispatcher stays
    busy from the moment a capture is consumed until its send finishes or is
    released.
    """

    def __init__(self, *, capture_ttl_seconds: float = 300) -> None:
        self.capture_ttl_seconds = capture_ttl_seconds
        self._armed_by: int | None = None
        self._armed_at: float = 0.0
        self._reserved = False
        self._sending = 0

    def _expired(self) -> bool:
        return (time.monotonic() - self._armed_at) > self.capture_ttl_seconds

    @property
    def armed_by(self) -> int | None:
        if self._armed_by is not None and self._expired():
            log.info("broadcast_capture_expired admin=%s", self._armed_by)
            self._armed_by = None
        return self._armed_by

    @property
    def in_flight(self) -> bool:
        return self._reserved or self._sending > 0

    def arm(self, admin_id: int) -> None:
        holder = self.armed_by
        if self.in_flight or (holder is not None and holder != admin_id):
            raise BroadcastBusyError(armed_by=holder, in_flight=self.in_flight)
        self._armed_by = admin_id
        self._armed_at = time.monotonic()
        log.info("broadcast_armed admin=%s", admin_id)

    def disarm(self, admin_id: int) -> bool:
        if self.armed_by != admin_id:
            return False
        self._armed_by = None
        log.info("broadcast_disarmed admin=%s", admin_id)
        return True

    def is_armed_by(self, admin_id: int) -> bool:
        return self.armed_by == admin_id

    def consume(self, admin_id: int) -> bool:
        """Take the armed capture for this admin's message.

        On success the capture is disarmed and the dispatcher is held busy
        until send_to_all() completes or release() is called.
        """
        if self.armed_by != admin_id:
            return False
        self._armed_by = None
        self._reserved = True
        return True

    def release(self) -> None:
        self._reserved = False

    async def _deliver(self, bot, chat_id: int, payload: BroadcastPayload) -> None:
        if payload.kind == "text":
            await bot.send_message(chat_id=chat_id, text=payload.text)
        elif payload.kind == "photo":
            await bot.send_photo(chat_id=chat_id, photo=payload.file_id, caption=payload.caption)
        elif payload.kind == "video":
            await bot.send_video(chat_id=chat_id, video=payload.file_id, caption=payload.caption)
        else:
            raise ValidationError(f"unsupported payload kind {payload.kind}")

    async def send_to_all(self, bot, payload: BroadcastPayload, recipients: Iterable[int]) -> BroadcastResult:
        """Deliver ``payload`` to every recipient; failures are counted, not raised."""
        result = BroadcastResult()
        self._sending += 1
        try:
            for chat_id in recipients:
                try:
                    try:
                        await self._deliver(bot, chat_id, payload)
                    except TelegramRetryAfter as e:
                        # flood control: wait as told and try this recipient once more
                        await asyncio.sleep(e.retry_after)
                        await self._deliver(bot, chat_id, payload)
                    result.sent += 1
                except Exception as e:
                    log.warning("broadcast_delivery_failed chat_id=%s err=%s", chat_id, e)
                    result.failed.append(int(chat_id))
        finally:
            self._sending -= 1
            self._reserved = False
        log.info("broadcast_done sent=%s failed=%s", result.sent, len(result.failed))
        return result
