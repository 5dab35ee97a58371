"""Tests for admin bulk edits of quota parameters."""

import pytest

from hostbot.core.errors import ValidationError
from hostbot.services.accounts.service import account_service
from hostbot.services.admin.config_mutator import AdminConfigMutator, config_mutator, parse_positive_int
from hostbot.services.quota.service import quota_service
from hostbot.services.referrals.service import referral_service


class TestParsePositiveInt:
    @pytest.mark.parametrize("raw", ["0", "-1", "abc", "", None, "1.5"])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            parse_positive_int(raw)

    def test_accepts(self):
        assert parse_positive_int(" 5 ") == 5
        assert parse_positive_int(3) == 3


class TestSetDefaultBaseLimit:
    @pytest.mark.asyncio
    async def test_updates_every_account_and_keeps_referrals(self, db):
        for tg_id in (1, 2, 3):
            await account_service.register(tg_id)
        await referral_service.apply_referral(1, 2)

        result = await config_mutator.set_default_base_limit("5")

        assert result.value == 5
        assert result.updated == 3
        assert result.failed == []
        a = await quota_service.get_stats(1)
        assert a.base_limit == 5
        assert a.bonus_slots == 1
        assert a.referrals == frozenset({2})
        assert a.total_slots == 6
        assert (await quota_service.get_stats(3)).total_slots == 5

    @pytest.mark.asyncio
    async def test_new_accounts_use_new_default(self, db):
        await config_mutator.set_default_base_limit(4)
        await account_service.register(50)

        assert (await quota_service.get_stats(50)).base_limit == 4
        assert (await quota_service.get_stats(51)).base_limit == 4

    @pytest.mark.asyncio
    async def test_lowering_below_file_count_reports_over_quota(self, db):
        await account_service.register(1)
        await quota_service.reserve_slot(1)
        await quota_service.reserve_slot(1)

        result = await config_mutator.set_default_base_limit(1)

        assert result.over_quota == 1
        stats = await quota_service.get_stats(1)
        assert stats.file_count == 2
        assert not stats.can_upload

    @pytest.mark.asyncio
    async def test_invalid_value_changes_nothing(self, db):
        await account_service.register(1)

        with pytest.raises(ValidationError):
            await config_mutator.set_default_base_limit("0")

        assert (await quota_service.get_stats(1)).base_limit == 2

    @pytest.mark.asyncio
    async def test_failures_are_collected(self, db, monkeypatch):
        for tg_id in (1, 2, 3):
            await account_service.register(tg_id)
        mutator = AdminConfigMutator()
        original = mutator._update_one

        async def flaky(tg_id, values):
            if tg_id == 2:
                raise RuntimeError("row locked")
            return await original(tg_id, values)

        monkeypatch.setattr(mutator, "_update_one", flaky)

        result = await mutator.set_default_base_limit(7)

        assert result.updated == 2
        assert result.failed == [2]
        assert result.total == 3
        assert (await quota_service.get_stats(1)).base_limit == 7
        assert (await quota_service.get_stats(2)).base_limit == 2
        assert (await quota_service.get_stats(3)).base_limit == 7


class TestSetReferralReward:
    @pytest.mark.asyncio
    async def test_future_referrals_use_new_reward(self, db):
        for tg_id in (1, 2, 3):
            await account_service.register(tg_id)
        await referral_service.apply_referral(1, 2)

        result = await config_mutator.set_referral_reward(3)
        granted = await referral_service.apply_referral(1, 3)

        stats = await quota_service.get_stats(1)
        assert result.updated == 3
        assert granted == 3
        assert stats.referral_reward == 3
        # earlier credits stay as they were
        assert stats.bonus_slots == 4
