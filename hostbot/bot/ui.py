from __future__ import annotations

import logging
from html import escape

from aiogram import Bot
from aiogram.types import Message

from hostbot.core.config import settings
from hostbot.core.errors import (AuthorizationError, BroadcastBusyError, HostBotError, NotFoundError,
                                 QuotaExceededError, StorageError, ValidationError)
from hostbot.bot import texts
from hostbot.services.referrals.service import referral_service

log = logging.getLogger(__name__)


async def bot_username(bot: Bot) -> str | None:
    if settings.bot_username:
        return settings.bot_username
    try:
        me = await bot.me()
        return me.username
    except Exception:
        log.warning("bot_username_unavailable", exc_info=True)
        return None


async def referral_link(bot: Bot, tg_id: int) -> str | None:
    username = await bot_username(bot)
    if not username:
        return None
    return referral_service.referral_link(username, tg_id)


def error_text(e: HostBotError) -> str:
    if isinstance(e, AuthorizationError):
        return texts.NOT_AUTHORIZED
    if isinstance(e, QuotaExceededError):
        return texts.quota_exceeded(e.stats, None)
    if isinstance(e, NotFoundError):
        return f"❌ {escape(str(e)).capitalize()}."
    if isinstance(e, ValidationError):
        return f"⚠️ {escape(str(e)).capitalize()}."
    if isinstance(e, BroadcastBusyError):
        if e.in_flight:
            return "⚠️ A broadcast is being sent right now. Try again when it finishes."
        return "⚠️ Another admin is preparing a broadcast. Try again later."
    if isinstance(e, StorageError):
        return texts.TRY_AGAIN
    return texts.TRY_AGAIN


async def answer_error(message: Message, e: HostBotError) -> None:
    if isinstance(e, StorageError):
        log.error("handler_storage_error err=%s", e, exc_info=e)
    await message.answer(error_text(e), parse_mode="HTML")
