"""Tests for dispatcher wiring and middlewares."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.types import CallbackQuery, Message

from hostbot.bot import texts
from hostbot.bot.app import build_dispatcher
from hostbot.bot.middlewares import BanGuardMiddleware, RateLimitMiddleware
from hostbot.services.bans import BanList
from hostbot.services.broadcast.service import BroadcastService
from hostbot.services.storage.service import HostingService

ADMIN_ID = 1000


def test_dispatcher_carries_shared_state():
    dp = build_dispatcher()

    assert isinstance(dp.workflow_data["ban_list"], BanList)
    assert isinstance(dp.workflow_data["broadcast"], BroadcastService)
    assert isinstance(dp.workflow_data["hosting"], HostingService)
    assert "started_at" in dp.workflow_data


def _event(cls, tg_id):
    event = MagicMock(spec=cls)
    event.from_user = MagicMock(id=tg_id)
    event.answer = AsyncMock()
    return event


class TestBanGuardMiddleware:
    @pytest.mark.asyncio
    async def test_banned_message_is_dropped(self):
        bans = BanList()
        bans.ban(5)
        handler = AsyncMock()
        event = _event(Message, 5)

        await BanGuardMiddleware()(handler, event, {"ban_list": bans})

        handler.assert_not_awaited()
        event.answer.assert_awaited_once_with(texts.BANNED)

    @pytest.mark.asyncio
    async def test_banned_callback_gets_alert(self):
        bans = BanList()
        bans.ban(5)
        handler = AsyncMock()
        event = _event(CallbackQuery, 5)

        await BanGuardMiddleware()(handler, event, {"ban_list": bans})

        handler.assert_not_awaited()
        event.answer.assert_awaited_once_with(texts.BANNED, show_alert=True)

    @pytest.mark.asyncio
    async def test_other_users_pass(self):
        bans = BanList()
        bans.ban(5)
        handler = AsyncMock(return_value="ok")
        data = {"ban_list": bans}

        assert await BanGuardMiddleware()(handler, _event(Message, 6), data) == "ok"
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_admin_is_never_blocked(self):
        bans = BanList()
        bans._banned.add(ADMIN_ID)
        handler = AsyncMock(return_value="ok")

        assert await BanGuardMiddleware()(handler, _event(Message, ADMIN_ID), {"ban_list": bans}) == "ok"


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_repeated_press_is_dropped(self):
        limiter = RateLimitMiddleware(min_interval_sec=60)
        handler = AsyncMock(return_value="ok")
        event = MagicMock(data="user:myfiles", from_user=MagicMock(id=5))

        assert await limiter(handler, event, {}) == "ok"
        assert await limiter(handler, event, {}) is None
        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_sweep_forgets_expired_presses(self):
        limiter = RateLimitMiddleware(min_interval_sec=0)
        limiter.SWEEP_EVERY = 2
        handler = AsyncMock()

        for n in range(4):
            await limiter(handler, MagicMock(data=f"b{n}", from_user=MagicMock(id=5)), {})

        assert handler.await_count == 4
        assert limiter._last == {}
