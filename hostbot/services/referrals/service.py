from __future__ import annotations

import logging
import re

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hostbot.core.errors import StorageError
from hostbot.core.time import utcnow
from hostbot.db.locks import user_locks
from hostbot.db.models import Referral, User
from hostbot.db.session import session_scope

log = logging.getLogger(__name__)

# /start payload: "<referrer tg_id>" or "ref_<referrer tg_id>"
_PAYLOAD_RE = re.compile(r"^(?:ref_)?(\d{1,20})$")


class ReferralService:
    @staticmethod
    def parse_payload(payload: str | None, new_tg_id: int) -> int | None:
        """Referrer id from a /start payload; None for missing, malformed or self payloads."""
        m = _PAYLOAD_RE.match((payload or "").strip())
        if not m:
            return None
        referrer_id = int(m.group(1))
        if referrer_id == int(new_tg_id) or referrer_id <= 0:
            return None
        return referrer_id

    @staticmethod
    def referral_link(bot_username: str, tg_id: int) -> str:
        return f"https://t.me/{bot_username.lstrip('@')}?start={tg_id}"

    async def apply_referral(self, referrer_id: int, new_tg_id: int) -> int:
        """Credit ``referrer_id`` for bringing ``new_tg_id``.

        Must only be called when the start event created ``new_tg_id``'s account.
        Returns the number of slots granted: 0 for self-referrals, unknown
        referrers and users that were already referred.
        """
        referrer_id = int(referrer_id)
        new_tg_id = int(new_tg_id)
        if referrer_id == new_tg_id:
            return 0

        async with user_locks.hold(referrer_id):
            try:
                async with session_scope() as session:
                    referrer = await session.get(User, referrer_id)
                    if not referrer:
                        log.info("referral_skip_unknown_referrer referrer=%s referred=%s", referrer_id, new_tg_id)
                        return 0

                    exists = await session.scalar(
                        select(Referral.id).where(Referral.referred_tg_id == new_tg_id).limit(1)
                    )
                    if exists:
                        log.info("referral_skip_duplicate referrer=%s referred=%s", referrer_id, new_tg_id)
                        return 0

                    reward = max(1, int(referrer.referral_reward or 1))
                    session.add(Referral(referrer_tg_id=referrer_id, referred_tg_id=new_tg_id, reward=reward))
                    await session.flush()
                    await session.execute(
                        update(User)
                        .where(User.tg_id == referrer_id)
                        .values(bonus_slots=User.bonus_slots + reward, updated_at=utcnow())
                    )
                    await session.commit()
            except IntegrityError:
                # referred concurrently through another process
                log.info("referral_skip_conflict referrer=%s referred=%s", referrer_id, new_tg_id)
                return 0
            except SQLAlchemyError as e:
                raise StorageError("referral credit failed") from e

        log.info("referral_credited referrer=%s referred=%s reward=%s", referrer_id, new_tg_id, reward)
        return reward

    async def count_referrals(self, tg_id: int) -> int:
        async with session_scope() as session:
            cnt = await session.scalar(select(func.count(Referral.id)).where(Referral.referrer_tg_id == tg_id))
        return int(cnt or 0)

    async def notify_referrer(self, bot, referrer_id: int, *, new_name: str, reward: int = 1) -> bool:
        """Tell the referrer about the new slot(s). Best-effort."""
        slots = "slot" if reward == 1 else "slots"
        try:
            await bot.send_message(
                chat_id=referrer_id,
                text=(
                    f"🎉 <b>{new_name}</b> joined with your referral link!\n"
                    f"You earned <b>+{reward}</b> upload {slots}."
                ),
                parse_mode="HTML",
            )
            return True
        except Exception:
            log.warning("referral_notify_failed referrer=%s", referrer_id, exc_info=True)
            return False


referral_service = ReferralService()
