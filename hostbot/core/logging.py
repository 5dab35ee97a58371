import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

CONTEXT_FIELDS = ("corr_id", "tg_id", "update_id", "path")
# chatty per-request loggers of the bot and storage clients
QUIET_LOGGERS = ("aiogram.event", "google.auth", "urllib3")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        # optional context fields passed via extra=
        for k in CONTEXT_FIELDS:
            if hasattr(record, k):
                payload[k] = getattr(record, k)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging() -> None:
    """Structured JSON logs to stdout.

    LOG_LEVEL controls our loggers. The QUIET_LOGGERS stay at WARNING unless
    LIBS_LOG_LEVEL says otherwise.
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)

    libs_level = os.getenv("LIBS_LOG_LEVEL", "WARNING").upper()
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(libs_level)
