"""Tests for daily active-user tracking."""

import asyncio
from datetime import date, timedelta

import pytest

from hostbot.core.time import utc_today
from hostbot.services.stats.daily import daily_tracker


@pytest.mark.asyncio
async def test_user_counted_once_per_day(db):
    day = date(2026, 5, 1)

    assert await daily_tracker.track(1, day)
    assert not await daily_tracker.track(1, day)
    assert await daily_tracker.track(2, day)

    stats = await daily_tracker.get(day)
    assert stats.users == frozenset({1, 2})
    assert stats.count == 2
    assert await daily_tracker.get_count(day) == 2


@pytest.mark.asyncio
async def test_days_are_independent(db):
    await daily_tracker.track(1, date(2026, 5, 1))
    await daily_tracker.track(1, date(2026, 5, 2))

    assert await daily_tracker.get_count(date(2026, 5, 1)) == 1
    assert await daily_tracker.get_count(date(2026, 5, 2)) == 1
    assert await daily_tracker.get_count(date(2026, 5, 3)) == 0


@pytest.mark.asyncio
async def test_concurrent_distinct_users(db):
    day = date(2026, 5, 1)

    added = await asyncio.gather(*(daily_tracker.track(tg_id, day) for tg_id in range(1, 21)))

    assert all(added)
    assert await daily_tracker.get_count(day) == 20
    assert (await daily_tracker.get(day)).count == 20


@pytest.mark.asyncio
async def test_concurrent_same_user(db):
    day = date(2026, 5, 1)

    added = await asyncio.gather(*(daily_tracker.track(5, day) for _ in range(5)))

    assert added.count(True) == 1
    assert await daily_tracker.get_count(day) == 1


@pytest.mark.asyncio
async def test_recent_is_zero_filled(db):
    today = utc_today()
    await daily_tracker.track(1)
    await daily_tracker.track(2, today - timedelta(days=2))

    rows = await daily_tracker.recent(3)

    assert rows == [(today, 1), (today - timedelta(days=1), 0), (today - timedelta(days=2), 1)]
