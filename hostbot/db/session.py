from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession, async_sessionmaker,
                                    create_async_engine)
from sqlalchemy.pool import NullPool

from hostbot.core.config import make_async_db_url

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None

log = logging.getLogger(__name__)


def init_engine(database_url: str) -> None:
    global _engine, _sessionmaker
    if _engine is not None:
        return
    url = make_async_db_url(database_url)
    if url.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them
        _engine = create_async_engine(url, poolclass=NullPool)
    else:
        _engine = create_async_engine(url, pool_pre_ping=True)
    _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    log.info("db_engine_initialized")


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("DB engine not initialized. Call init_engine() first.")
    return _engine


async def dispose_engine() -> None:
    global _engine, _sessionmaker
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _sessionmaker = None
    log.info("db_engine_disposed")


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        raise RuntimeError("DB engine not initialized. Call init_engine() first.")
    return _sessionmaker


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """AsyncSession context manager."""
    sm = get_sessionmaker()
    async with sm() as session:
        yield session
