import logging
import time

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from hostbot.core.config import settings
from hostbot.bot.handlers.common import router as common_router
from hostbot.bot.handlers.admin import router as admin_router
from hostbot.bot.handlers.files import router as files_router
from hostbot.bot.handlers.start import router as start_router
from hostbot.bot.middlewares import BanGuardMiddleware, CorrelationIdMiddleware, RateLimitMiddleware
from hostbot.services.bans import BanList
from hostbot.services.broadcast.service import BroadcastService
from hostbot.services.storage.provider import build_provider
from hostbot.services.storage.service import HostingService

log = logging.getLogger(__name__)


def build_dispatcher() -> Dispatcher:
    # ban_list, broadcast, hosting and started_at reach handlers as keyword arguments
    dp = Dispatcher(
        storage=MemoryStorage(),
        ban_list=BanList(protected={settings.admin_tg_id}),
        broadcast=BroadcastService(capture_ttl_seconds=settings.flow_timeout_seconds),
        hosting=HostingService(build_provider(settings)),
        started_at=time.monotonic(),
    )
    dp.message.middleware(CorrelationIdMiddleware())
    dp.callback_query.middleware(CorrelationIdMiddleware())
    dp.message.middleware(BanGuardMiddleware())
    dp.callback_query.middleware(BanGuardMiddleware())
    dp.callback_query.middleware(RateLimitMiddleware(min_interval_sec=settings.rate_limit_interval_sec))

    # /cancel and /help must win over any pending capture
    dp.include_router(common_router)
    dp.include_router(admin_router)
    dp.include_router(files_router)
    dp.include_router(start_router)
    return dp


async def run_bot() -> None:
    bot = Bot(token=settings.bot_token)
    dp = build_dispatcher()

    log.info("bot_start provider=%s", settings.storage_provider)
    await dp.start_polling(bot)
