"""End-to-end: a referral unlocks an upload that was over quota."""

import pytest

from hostbot.core.errors import QuotaExceededError
from hostbot.services.accounts.service import account_service
from hostbot.services.referrals.service import referral_service


@pytest.mark.asyncio
async def test_referral_unlocks_third_upload(db, hosting, html_source):
    a = await account_service.register(100, name="A")
    assert a.created
    await hosting.upload(100, "one.html", None, html_source())
    await hosting.upload(100, "two.html", None, html_source())
    with pytest.raises(QuotaExceededError) as exc:
        await hosting.upload(100, "three.html", None, html_source())
    assert exc.value.stats.total_slots == 2

    # B presses /start with A's id as payload
    b = await account_service.register(200, name="B")
    assert b.created
    referrer = referral_service.parse_payload("100", 200)
    assert await referral_service.apply_referral(referrer, 200) == 1

    res = await hosting.upload(100, "three.html", None, html_source())

    assert res.stats.file_count == 3
    assert res.stats.total_slots == 3
    assert not res.stats.can_upload


@pytest.mark.asyncio
async def test_returning_user_does_not_credit_again(db):
    await account_service.register(100)
    await account_service.register(200)
    await referral_service.apply_referral(100, 200)

    again = await account_service.register(200)

    # only a freshly created account may credit a referrer
    assert not again.created
    assert await referral_service.count_referrals(100) == 1
