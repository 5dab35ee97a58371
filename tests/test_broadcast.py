"""Tests for broadcast arming and fan-out."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.exceptions import TelegramRetryAfter

from hostbot.core.errors import BroadcastBusyError, ValidationError
from hostbot.services.broadcast.service import BroadcastPayload, BroadcastService, payload_from_message


def _message(text=None, photo=None, video=None, caption=None):
    msg = MagicMock()
    msg.text = text
    msg.photo = photo
    msg.video = video
    msg.caption = caption
    return msg


class TestPayloadFromMessage:
    def test_text(self):
        assert payload_from_message(_message(text="hello")) == BroadcastPayload(kind="text", text="hello")

    def test_photo_uses_largest_size(self):
        small, large = MagicMock(file_id="small"), MagicMock(file_id="large")

        payload = payload_from_message(_message(photo=[small, large], caption="look"))

        assert payload == BroadcastPayload(kind="photo", file_id="large", caption="look")

    def test_video(self):
        payload = payload_from_message(_message(video=MagicMock(file_id="vid")))
        assert payload.kind == "video"
        assert payload.file_id == "vid"
        assert payload.caption is None

    def test_unsupported(self):
        with pytest.raises(ValidationError):
            payload_from_message(_message())


class TestArming:
    def test_arm_consume(self):
        svc = BroadcastService()
        svc.arm(1)

        assert svc.is_armed_by(1)
        assert not svc.consume(2)
        assert svc.consume(1)
        assert svc.armed_by is None
        assert not svc.consume(1)

    def test_second_admin_is_rejected(self):
        svc = BroadcastService()
        svc.arm(1)

        with pytest.raises(BroadcastBusyError) as exc:
            svc.arm(2)

        assert exc.value.armed_by == 1
        assert svc.is_armed_by(1)

    def test_same_admin_can_rearm(self):
        svc = BroadcastService()
        svc.arm(1)
        svc.arm(1)
        assert svc.is_armed_by(1)

    def test_capture_expires(self):
        svc = BroadcastService(capture_ttl_seconds=-1)
        svc.arm(1)

        assert svc.armed_by is None
        svc.arm(2)

    def test_disarm_only_by_holder(self):
        svc = BroadcastService()
        svc.arm(1)

        assert not svc.disarm(2)
        assert svc.disarm(1)
        assert svc.armed_by is None


class TestSendToAll:
    @pytest.mark.asyncio
    async def test_failures_do_not_stop_delivery(self, bot):
        async def send_message(chat_id, text):
            if chat_id in (2, 4):
                raise RuntimeError("bot was blocked by the user")

        bot.send_message.side_effect = send_message
        svc = BroadcastService()

        result = await svc.send_to_all(bot, BroadcastPayload(kind="text", text="hi"), [1, 2, 3, 4, 5])

        assert result.sent == 3
        assert result.failed == [2, 4]
        assert result.total == 5
        assert bot.send_message.await_count == 5
        assert not svc.in_flight

    @pytest.mark.asyncio
    async def test_media_payloads(self, bot):
        svc = BroadcastService()

        await svc.send_to_all(bot, BroadcastPayload(kind="photo", file_id="p", caption="c"), [1])
        await svc.send_to_all(bot, BroadcastPayload(kind="video", file_id="v"), [1])

        bot.send_photo.assert_awaited_once_with(chat_id=1, photo="p", caption="c")
        bot.send_video.assert_awaited_once_with(chat_id=1, video="v", caption=None)

    @pytest.mark.asyncio
    async def test_retry_after_is_retried_once(self, bot):
        flood = TelegramRetryAfter(method=MagicMock(), message="Too Many Requests", retry_after=0)
        bot.send_message.side_effect = [flood, None]
        svc = BroadcastService()

        result = await svc.send_to_all(bot, BroadcastPayload(kind="text", text="hi"), [1])

        assert result.sent == 1
        assert bot.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_arming_rejected_while_sending(self):
        svc = BroadcastService()
        seen = []

        async def send_message(chat_id, text):
            with pytest.raises(BroadcastBusyError) as exc:
                svc.arm(9)
            seen.append(exc.value.in_flight)

        slow_bot = AsyncMock()
        slow_bot.send_message.side_effect = send_message

        await svc.send_to_all(slow_bot, BroadcastPayload(kind="text", text="hi"), [1])

        assert seen == [True]
        svc.arm(9)

    @pytest.mark.asyncio
    async def test_overlapping_sends_stay_in_flight_until_both_finish(self):
        svc = BroadcastService()
        gate = asyncio.Event()

        async def send_message(chat_id, text):
            if chat_id == 1:
                await gate.wait()

        slow_bot = AsyncMock()
        slow_bot.send_message.side_effect = send_message
        payload = BroadcastPayload(kind="text", text="hi")

        long_send = asyncio.create_task(svc.send_to_all(slow_bot, payload, [1]))
        await asyncio.sleep(0)
        await svc.send_to_all(slow_bot, payload, [2])

        assert svc.in_flight
        with pytest.raises(BroadcastBusyError):
            svc.arm(9)

        gate.set()
        await long_send
        assert not svc.in_flight


class TestReservation:
    def test_consumed_capture_blocks_arming_until_send(self):
        svc = BroadcastService()
        svc.arm(1)
        assert svc.consume(1)

        assert svc.in_flight
        with pytest.raises(BroadcastBusyError) as exc:
            svc.arm(2)
        assert exc.value.in_flight

    def test_release_frees_the_dispatcher(self):
        svc = BroadcastService()
        svc.arm(1)
        svc.consume(1)

        svc.release()

        assert not svc.in_flight
        svc.arm(2)
        assert svc.is_armed_by(2)

    @pytest.mark.asyncio
    async def test_send_finishing_releases_the_reservation(self, bot):
        svc = BroadcastService()
        svc.arm(1)
        svc.consume(1)

        await svc.send_to_all(bot, BroadcastPayload(kind="text", text="hi"), [5])

        assert not svc.in_flight
        svc.arm(2)
