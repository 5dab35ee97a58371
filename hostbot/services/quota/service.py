from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hostbot.core.errors import NotFoundError, QuotaExceededError, StorageError, ValidationError
from hostbot.core.time import utcnow
from hostbot.db.locks import user_locks
from hostbot.db.models import Referral, User
from hostbot.db.session import session_scope
from hostbot.repo import get_default_base_limit, get_default_referral_reward

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaStats:
    file_count: int = 0
    base_limit: int = 2
    referral_reward: int = 1
    bonus_slots: int = 0
    referrals: frozenset[int] = field(default_factory=frozenset)

    @property
    def referral_count(self) -> int:
        return len(self.referrals)

    @property
    def total_slots(self) -> int:
        return self.base_limit + self.bonus_slots

    @property
    def free_slots(self) -> int:
        return max(0, self.total_slots - self.file_count)

    @property
    def can_upload(self) -> bool:
        return self.file_count < self.total_slots


async def load_stats(session: AsyncSession, tg_id: int) -> QuotaStats | None:
    user = await session.get(User, tg_id, populate_existing=True)
    if not user:
        return None
    res = await session.execute(select(Referral.referred_tg_id).where(Referral.referrer_tg_id == tg_id))
    return QuotaStats(
        file_count=int(user.file_count),
        base_limit=int(user.base_limit),
        referral_reward=int(user.referral_reward or 1),
        bonus_slots=int(user.bonus_slots),
        referrals=frozenset(int(x) for x in res.scalars().all()),
    )


class QuotaService:
    async def get_stats(self, tg_id: int) -> QuotaStats:
        """Stats of an existing account, or fresh defaults. Never creates a row."""
        try:
            async with session_scope() as session:
                stats = await load_stats(session, tg_id)
                if stats is not None:
                    return stats
                return QuotaStats(
                    base_limit=await get_default_base_limit(session),
                    referral_reward=await get_default_referral_reward(session),
                )
        except SQLAlchemyError as e:
            raise StorageError("stats read failed") from e

    async def can_admit_upload(self, tg_id: int) -> bool:
        stats = await self.get_stats(tg_id)
        return stats.can_upload

    async def reserve_slot(self, tg_id: int) -> QuotaStats:
        """Admit one upload: increment file_count only while it is below the limit.

        The check and the increment are one UPDATE statement, so parallel
        uploads can never push file_count past base_limit + bonus_slots.
        """
        async with user_locks.hold(tg_id):
            try:
                async with session_scope() as session:
                    stmt = (
                        update(User)
                        .where(
                            User.tg_id == tg_id,
                            User.file_count < User.base_limit + User.bonus_slots,
                        )
                        .values(file_count=User.file_count + 1, updated_at=utcnow())
                    )
                    res = await session.execute(stmt)
                    await session.commit()
                    stats = await load_stats(session, tg_id)
            except SQLAlchemyError as e:
                raise StorageError("slot reservation failed") from e

        if stats is None:
            raise NotFoundError(f"user {tg_id} not found")
        if res.rowcount == 0:
            log.info("quota_exceeded tg_id=%s used=%s total=%s", tg_id, stats.file_count, stats.total_slots)
            raise QuotaExceededError(stats)
        log.info("quota_slot_reserved tg_id=%s used=%s total=%s", tg_id, stats.file_count, stats.total_slots)
        return stats

    async def apply_delta(self, tg_id: int, delta: int) -> QuotaStats:
        """Apply +1/-1 to file_count. Decrements stop at zero."""
        if delta not in (1, -1):
            raise ValidationError("delta must be +1 or -1")

        if delta > 0:
            new_value = User.file_count + 1
        else:
            new_value = case((User.file_count > 0, User.file_count - 1), else_=0)

        async with user_locks.hold(tg_id):
            try:
                async with session_scope() as session:
                    res = await session.execute(
                        update(User).where(User.tg_id == tg_id).values(file_count=new_value, updated_at=utcnow())
                    )
                    await session.commit()
                    stats = await load_stats(session, tg_id)
            except SQLAlchemyError as e:
                raise StorageError("quota update failed") from e

        if res.rowcount == 0 or stats is None:
            raise NotFoundError(f"user {tg_id} not found")
        log.info("quota_delta_applied tg_id=%s delta=%s used=%s", tg_id, delta, stats.file_count)
        return stats

    async def release_slot(self, tg_id: int) -> QuotaStats:
        return await self.apply_delta(tg_id, -1)


quota_service = QuotaService()
