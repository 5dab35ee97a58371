from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import update

from hostbot.core.errors import ValidationError
from hostbot.core.time import utcnow
from hostbot.db.locks import user_locks
from hostbot.db.models import User
from hostbot.db.session import session_scope
from hostbot.repo import (DEFAULT_BASE_LIMIT_KEY, REFERRAL_REWARD_KEY, list_user_ids,
                          set_app_setting_int)

log = logging.getLogger(__name__)


@dataclass
class BulkUpdateResult:
    value: int
    updated: int = 0
    failed: list[int] = field(default_factory=list)
    # accounts whose file_count is now above their total slots
    over_quota: int = 0

    @property
    def total(self) -> int:
        return self.updated + len(self.failed)


def parse_positive_int(raw: str | int | None, *, what: str = "value") -> int:
    s = str(raw if raw is not None else "").strip()
    if not s.isdigit() or int(s) <= 0:
        raise ValidationError(f"{what} must be a positive whole number")
    return int(s)


class AdminConfigMutator:
    """Bulk edits of quota parameters across every account.

    Each account is written in its own transaction. A failing account is
    logged and collected in ``failed``; the remaining accounts are still
    processed.
    """

    async def set_default_base_limit(self, new_limit: int | str) -> BulkUpdateResult:
        value = parse_positive_int(new_limit, what="slot count")
        async with session_scope() as session:
            await set_app_setting_int(session, DEFAULT_BASE_LIMIT_KEY, value)
            await session.commit()
        result = await self._update_all(value, base_limit=value)
        log.info(
            "admin_set_base_limit value=%s updated=%s failed=%s over_quota=%s",
            value, result.updated, len(result.failed), result.over_quota,
        )
        return result

    async def set_referral_reward(self, new_reward: int | str) -> BulkUpdateResult:
        value = parse_positive_int(new_reward, what="referral reward")
        async with session_scope() as session:
            await set_app_setting_int(session, REFERRAL_REWARD_KEY, value)
            await session.commit()
        result = await self._update_all(value, referral_reward=value)
        log.info("admin_set_referral_reward value=%s updated=%s failed=%s", value, result.updated, len(result.failed))
        return result

    async def _update_all(self, value: int, **values: int) -> BulkUpdateResult:
        async with session_scope() as session:
            tg_ids = await list_user_ids(session)

        result = BulkUpdateResult(value=value)
        for tg_id in tg_ids:
            try:
                over = await self._update_one(tg_id, values)
            except Exception:
                log.exception("admin_bulk_update_failed tg_id=%s values=%s", tg_id, values)
                result.failed.append(tg_id)
                continue
            result.updated += 1
            if over:
                result.over_quota += 1
        return result

    async def _update_one(self, tg_id: int, values: dict[str, int]) -> bool:
        async with user_locks.hold(tg_id):
            async with session_scope() as session:
                await session.execute(update(User).where(User.tg_id == tg_id).values(updated_at=utcnow(), **values))
                await session.commit()
                user = await session.get(User, tg_id, populate_existing=True)
        return bool(user and user.file_count > user.total_slots)


config_mutator = AdminConfigMutator()
