import asyncio
import logging
import subprocess
import sys

from hostbot.bot.app import run_bot
from hostbot.core.config import settings
from hostbot.core.logging import setup_logging
from hostbot.db.session import init_engine

log = logging.getLogger(__name__)


def _run_alembic_upgrade_head_best_effort() -> None:
    """Apply migrations at boot (best-effort)."""
    try:
        subprocess.check_call([sys.executable, "-m", "alembic", "upgrade", "head"])
        log.info("alembic_upgrade_head_done")
    except Exception:
        # the bot can still serve if the schema is already current
        log.exception("alembic_upgrade_head_failed")


async def main() -> None:
    setup_logging()
    init_engine(settings.database_url)
    if settings.auto_migrate:
        _run_alembic_upgrade_head_best_effort()

    await run_bot()


if __name__ == "__main__":
    asyncio.run(main())
