from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject, Update

from hostbot.bot.auth import is_admin
from hostbot.bot.texts import BANNED

log = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseMiddleware):
    """Adds corr_id to logger records via extra in handler calls."""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        update: Update | None = data.get("event_update")
        if update:
            data["corr_id"] = f"u{update.update_id}"
            data["update_id"] = update.update_id
        return await handler(event, data)


class RateLimitMiddleware(BaseMiddleware):
    """Drops repeated presses of the same button inside ``min_interval_sec``."""

    # expired entries are dropped after this many admitted presses
    SWEEP_EVERY = 1000

    def __init__(self, min_interval_sec: float = 0.4):
        self.min_interval_sec = min_interval_sec
        self._last: dict[tuple[int, str], float] = {}
        self._seen = 0

    def _sweep(self, now: float) -> None:
        self._last = {k: t for k, t in self._last.items() if now - t < self.min_interval_sec}

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        # only for callback queries
        cb = getattr(event, "data", None)
        from_user = getattr(event, "from_user", None)
        if cb and from_user:
            key = (from_user.id, cb)
            now = time.monotonic()
            last = self._last.get(key)
            if last and (now - last) < self.min_interval_sec:
                log.debug("callback_throttled data=%s", cb, extra={"tg_id": from_user.id})
                return None
            self._last[key] = now
            self._seen += 1
            if self._seen % self.SWEEP_EVERY == 0:
                self._sweep(now)
        return await handler(event, data)


class BanGuardMiddleware(BaseMiddleware):
    """Drops events from users in the dispatcher's ``ban_list``."""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        ban_list = data.get("ban_list")
        from_user = getattr(event, "from_user", None)
        if ban_list is None or from_user is None or is_admin(from_user.id):
            return await handler(event, data)
        if not ban_list.is_banned(from_user.id):
            return await handler(event, data)

        log.info("banned_user_blocked", extra={"tg_id": from_user.id})
        if isinstance(event, CallbackQuery):
            await event.answer(BANNED, show_alert=True)
        elif isinstance(event, Message):
            await event.answer(BANNED)
        return None
