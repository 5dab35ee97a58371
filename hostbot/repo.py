from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hostbot.core.config import settings
from hostbot.core.time import utcnow
from hostbot.db.models import AppSetting, User

log = logging.getLogger(__name__)

# ---- Runtime settings (admin-tunable) ----------------------------------------
DEFAULT_BASE_LIMIT_KEY = "default_base_limit"
REFERRAL_REWARD_KEY = "referral_reward"


async def get_app_setting_int(session: AsyncSession, key: str, *, default: int) -> int:
    row = await session.get(AppSetting, key)
    if not row or row.int_value is None:
        return int(default)
    return int(row.int_value)


async def set_app_setting_int(session: AsyncSession, key: str, value: int) -> None:
    row = await session.get(AppSetting, key)
    if not row:
        row = AppSetting(key=key)
        session.add(row)
    row.int_value = int(value)
    row.touch()
    await session.flush()


async def get_default_base_limit(session: AsyncSession) -> int:
    """Runtime-tunable base limit for new accounts. Falls back to settings."""
    return await get_app_setting_int(session, DEFAULT_BASE_LIMIT_KEY, default=settings.default_base_limit)


async def get_default_referral_reward(session: AsyncSession) -> int:
    return await get_app_setting_int(session, REFERRAL_REWARD_KEY, default=settings.referral_reward)


# ---- Users ---------------------------------------------------------------------
async def ensure_user(session: AsyncSession, tg_id: int, *, name: str | None = None) -> tuple[User, bool]:
    """
    Returns (user, created).

    New accounts start with the current default base limit and referral reward.
    Existing accounts only get their display name refreshed.
    """
    user = await session.get(User, tg_id)
    if user:
        if name and user.name != name:
            user.name = name
            user.updated_at = utcnow()
            await session.flush()
        return user, False

    user = User(
        tg_id=tg_id,
        name=(name or None),
        file_count=0,
        base_limit=await get_default_base_limit(session),
        referral_reward=await get_default_referral_reward(session),
        bonus_slots=0,
    )
    session.add(user)
    await session.flush()
    log.info("user_created tg_id=%s", tg_id)
    return user, True


async def list_user_ids(session: AsyncSession) -> list[int]:
    res = await session.execute(select(User.tg_id).order_by(User.joined_at.asc(), User.tg_id.asc()))
    return [int(x) for x in res.scalars().all()]


async def list_users(session: AsyncSession) -> list[User]:
    res = await session.execute(select(User).order_by(User.joined_at.asc(), User.tg_id.asc()))
    return list(res.scalars().all())


async def count_users(session: AsyncSession) -> int:
    return int(await session.scalar(select(func.count(User.tg_id))) or 0)


async def total_files(session: AsyncSession) -> int:
    return int(await session.scalar(select(func.coalesce(func.sum(User.file_count), 0))) or 0)
