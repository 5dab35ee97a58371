from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hostbot.core.errors import StorageError
from hostbot.db.locks import user_locks
from hostbot.db.session import session_scope
from hostbot.repo import ensure_user

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registration:
    tg_id: int
    name: str
    created: bool


class AccountService:
    async def register(self, tg_id: int, *, name: str | None = None) -> Registration:
        """Create the account on first contact; refresh the display name otherwise."""
        async with user_locks.hold(tg_id):
            try:
                async with session_scope() as session:
                    user, created = await ensure_user(session, tg_id, name=name)
                    display = user.display_name
                    await session.commit()
            except IntegrityError:
                # another process created the row between our read and insert
                log.info("user_register_race tg_id=%s", tg_id)
                return Registration(tg_id=tg_id, name=name or "Unknown", created=False)
            except SQLAlchemyError as e:
                raise StorageError("user registration failed") from e
        return Registration(tg_id=tg_id, name=display, created=created)


account_service = AccountService()
