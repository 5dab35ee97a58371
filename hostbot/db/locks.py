from __future__ import annotations

import asyncio
from collections.abc import Hashable
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLock:
    """Per-key asyncio locks for one process.

    Every read-modify-write of a user row, a day's stats record or a hosted
    file runs inside ``async with locks.hold(key)``. The SQL each holder runs is
    itself atomic, so other processes sharing the database stay consistent
    without this lock.
    Locks are dropped once nobody holds or waits for them.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


user_locks = KeyedLock()
day_locks = KeyedLock()
