from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hostbot.core.errors import StorageError
from hostbot.core.time import utc_today, utcnow
from hostbot.db.locks import day_locks
from hostbot.db.models import DailyStat, DailyStatUser
from hostbot.db.session import session_scope

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class DailyStats:
    day: date
    users: frozenset[int]

    @property
    def count(self) -> int:
        return len(self.users)


class DailyUsageTracker:
    async def track(self, tg_id: int, day: date | None = None) -> bool:
        """Record ``tg_id`` as seen on ``day`` (UTC today by default).

        The membership row and the counter change in one transaction, so the
        counter can neither skip nor double count. A unique-key conflict means
        another process touched the same day first; the attempt is retried.
        Returns True when the user was newly added.
        """
        day = day or utc_today()
        async with day_locks.hold(day):
            for attempt in range(1, MAX_ATTEMPTS + 1):
                try:
                    return await self._track_once(int(tg_id), day)
                except IntegrityError:
                    log.info("daily_stats_conflict day=%s tg_id=%s attempt=%s", day, tg_id, attempt)
                except SQLAlchemyError as e:
                    raise StorageError("daily stats update failed") from e
        raise StorageError("daily stats update kept conflicting")

    async def _track_once(self, tg_id: int, day: date) -> bool:
        async with session_scope() as session:
            seen = await session.get(DailyStatUser, (day, tg_id))
            if seen:
                return False

            session.add(DailyStatUser(day=day, tg_id=tg_id))
            stat = await session.get(DailyStat, day)
            if stat is None:
                session.add(DailyStat(day=day, count=1, updated_at=utcnow()))
                await session.flush()
            else:
                await session.execute(
                    update(DailyStat)
                    .where(DailyStat.day == day)
                    .values(count=DailyStat.count + 1, updated_at=utcnow())
                )
            await session.commit()

        log.info("daily_user_tracked day=%s tg_id=%s", day, tg_id)
        return True

    async def get(self, day: date | None = None) -> DailyStats:
        day = day or utc_today()
        async with session_scope() as session:
            res = await session.execute(select(DailyStatUser.tg_id).where(DailyStatUser.day == day))
            return DailyStats(day=day, users=frozenset(int(x) for x in res.scalars().all()))

    async def get_count(self, day: date | None = None) -> int:
        day = day or utc_today()
        async with session_scope() as session:
            stat = await session.get(DailyStat, day)
            return int(stat.count) if stat else 0

    async def recent(self, days: int = 7) -> list[tuple[date, int]]:
        """(day, count) for the last ``days`` days, newest first, zero-filled."""
        today = utc_today()
        start = today - timedelta(days=max(1, days) - 1)
        async with session_scope() as session:
            res = await session.execute(select(DailyStat.day, DailyStat.count).where(DailyStat.day >= start))
            counts = {d: int(c) for d, c in res.all()}
        return [(today - timedelta(days=i), counts.get(today - timedelta(days=i), 0)) for i in range(max(1, days))]


daily_tracker = DailyUsageTracker()
