"""Pytest configuration and fixtures for hostbot tests."""

import os

# settings are read at import time
os.environ.setdefault("BOT_TOKEN", "123456:TEST")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./hostbot-test.db")
os.environ.setdefault("ADMIN_TG_ID", "1000")
os.environ.setdefault("BOT_USERNAME", "hosting_test_bot")

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from hostbot.db.base import Base
from hostbot.db import models  # noqa: F401
from hostbot.db.session import dispose_engine, get_engine, init_engine
from hostbot.services.storage.provider import LocalStorageProvider
from hostbot.services.storage.service import HostingService

ADMIN_ID = int(os.environ["ADMIN_TG_ID"])


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh SQLite database per test."""
    await dispose_engine()
    init_engine(f"sqlite+aiosqlite:///{tmp_path / 'hostbot.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await dispose_engine()


@pytest.fixture
def provider(tmp_path):
    return LocalStorageProvider(tmp_path / "uploads", "https://files.example.test")


@pytest.fixture
def hosting(provider):
    return HostingService(provider)


@pytest.fixture
def bot():
    """Bot double: every API call succeeds."""
    mock_bot = AsyncMock()
    mock_bot.send_message = AsyncMock()
    mock_bot.send_photo = AsyncMock()
    mock_bot.send_video = AsyncMock()
    return mock_bot


@pytest.fixture
def html_source():
    """Factory of upload byte sources."""

    def make(body: bytes = b"<html><body>hi</body></html>"):
        async def source() -> bytes:
            return body

        return source

    return make
