from __future__ import annotations

import logging

from hostbot.core.errors import ValidationError

log = logging.getLogger(__name__)


def parse_tg_id(raw: str | int | None) -> int:
    s = str(raw if raw is not None else "").strip()
    if not s.isdigit():
        raise ValidationError("user id must be digits")
    return int(s)


class BanList:
    """Banned chat ids for the lifetime of this process.

    Held in memory only: a restart forgets every ban. One instance is created
    per dispatcher and handed to handlers as ``ban_list``.
    """

    def __init__(self, *, protected: set[int] | frozenset[int] = frozenset()) -> None:
        self._banned: set[int] = set()
        # ids that can never be banned (the admin)
        self._protected = frozenset(int(x) for x in protected)

    def ban(self, tg_id: int | str) -> bool:
        tid = parse_tg_id(tg_id)
        if tid in self._protected:
            raise ValidationError("this user cannot be banned")
        if tid in self._banned:
            return False
        self._banned.add(tid)
        log.info("user_banned tg_id=%s", tid)
        return True

    def unban(self, tg_id: int | str) -> bool:
        tid = parse_tg_id(tg_id)
        if tid not in self._banned:
            return False
        self._banned.discard(tid)
        log.info("user_unbanned tg_id=%s", tid)
        return True

    def is_banned(self, tg_id: int) -> bool:
        return int(tg_id) in self._banned

    def __len__(self) -> int:
        return len(self._banned)

    def snapshot(self) -> list[int]:
        return sorted(self._banned)
