"""Tests for upload quota accounting."""

import asyncio

import pytest

from hostbot.core.errors import NotFoundError, QuotaExceededError, ValidationError
from hostbot.db.models import User
from hostbot.db.session import session_scope
from hostbot.services.accounts.service import account_service
from hostbot.services.quota.service import QuotaStats, quota_service


class TestQuotaStats:
    def test_total_and_free_slots(self):
        stats = QuotaStats(file_count=3, base_limit=2, bonus_slots=2, referrals=frozenset({5, 6}))
        assert stats.total_slots == 4
        assert stats.free_slots == 1
        assert stats.referral_count == 2
        assert stats.can_upload

    def test_over_quota_has_no_free_slots(self):
        stats = QuotaStats(file_count=5, base_limit=2)
        assert stats.free_slots == 0
        assert not stats.can_upload


class TestQuotaService:
    @pytest.mark.asyncio
    async def test_unknown_user_gets_defaults_without_row(self, db):
        stats = await quota_service.get_stats(42)

        assert stats == QuotaStats(file_count=0, base_limit=2, referral_reward=1, bonus_slots=0)
        async with session_scope() as session:
            assert await session.get(User, 42) is None

    @pytest.mark.asyncio
    async def test_reserve_until_limit(self, db):
        await account_service.register(1, name="A")

        assert (await quota_service.reserve_slot(1)).file_count == 1
        assert (await quota_service.reserve_slot(1)).file_count == 2
        with pytest.raises(QuotaExceededError) as exc:
            await quota_service.reserve_slot(1)

        assert exc.value.stats.file_count == 2
        assert exc.value.stats.total_slots == 2
        assert not await quota_service.can_admit_upload(1)

    @pytest.mark.asyncio
    async def test_reserve_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            await quota_service.reserve_slot(404)

    @pytest.mark.asyncio
    async def test_parallel_reservations_never_exceed_limit(self, db):
        await account_service.register(7, name="racer")

        results = await asyncio.gather(
            *(quota_service.reserve_slot(7) for _ in range(6)),
            return_exceptions=True,
        )

        admitted = [r for r in results if isinstance(r, QuotaStats)]
        rejected = [r for r in results if isinstance(r, QuotaExceededError)]
        assert len(admitted) == 2
        assert len(rejected) == 4
        assert (await quota_service.get_stats(7)).file_count == 2

    @pytest.mark.asyncio
    async def test_decrement_stops_at_zero(self, db):
        await account_service.register(3)

        stats = await quota_service.apply_delta(3, -1)

        assert stats.file_count == 0

    @pytest.mark.asyncio
    async def test_increment_and_release(self, db):
        await account_service.register(3)

        assert (await quota_service.apply_delta(3, 1)).file_count == 1
        assert (await quota_service.release_slot(3)).file_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("delta", [0, 2, -5])
    async def test_invalid_delta(self, db, delta):
        await account_service.register(3)
        with pytest.raises(ValidationError):
            await quota_service.apply_delta(3, delta)

    @pytest.mark.asyncio
    async def test_delta_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            await quota_service.apply_delta(99, -1)


class TestAccountService:
    @pytest.mark.asyncio
    async def test_register_creates_once(self, db):
        first = await account_service.register(10, name="Ann")
        second = await account_service.register(10, name="Anna")

        assert first.created
        assert not second.created
        assert second.name == "Anna"

    @pytest.mark.asyncio
    async def test_register_without_name(self, db):
        reg = await account_service.register(11)
        assert reg.name == "Unknown"
