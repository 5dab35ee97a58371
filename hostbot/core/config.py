import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def make_async_db_url(url: str) -> str:
    """Accepts Railway-style DATABASE_URL and returns sqlalchemy async url."""
    if url.startswith("postgresql+asyncpg://") or url.startswith("sqlite+aiosqlite://"):
        return url
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    raise RuntimeError("Unsupported DATABASE_URL format")


@dataclass(frozen=True)
class Settings:
    bot_token: str
    database_url: str

    # owner (admin access)
    admin_tg_id: int

    # used to build referral deep links; resolved via getMe when empty
    bot_username: str | None = None
    support_username: str = "Gamaspyowner"

    # Quota defaults for new accounts (admin can change them at runtime)
    default_base_limit: int = 2
    referral_reward: int = 1

    # Storage
    # local: files on disk, served by whatever sits in front of STORAGE_PUBLIC_BASE_URL
    # firebase: Google Cloud Storage bucket behind Firebase download links
    storage_provider: str = "local"  # local | firebase
    storage_bucket: str = ""
    # service-account JSON (inline) or a path to the key file
    storage_credentials: str | None = None
    storage_credentials_file: str | None = None
    storage_local_dir: str = "/data/uploads"
    storage_public_base_url: str = "http://localhost:8080"

    # Telegram bots can only download files up to 20 MB
    max_upload_bytes: int = 20 * 1024 * 1024

    # multi-step admin/user flows fall back to idle after this long
    flow_timeout_seconds: int = 300
    rate_limit_interval_sec: float = 0.4

    auto_migrate: bool = True


def _load_settings() -> Settings:
    bot_token = (os.getenv("BOT_TOKEN") or "").strip()
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is missing")

    database_url_raw = os.getenv("DATABASE_URL", "").strip()
    if not database_url_raw:
        raise RuntimeError("DATABASE_URL is missing")

    admin_raw = os.getenv("ADMIN_TG_ID", "").strip()
    if not admin_raw.isdigit():
        raise RuntimeError("ADMIN_TG_ID is missing or invalid (must be digits)")

    return Settings(
        bot_token=bot_token,
        database_url=make_async_db_url(database_url_raw),
        admin_tg_id=int(admin_raw),
        bot_username=(os.getenv("BOT_USERNAME") or "").strip().lstrip("@") or None,
        support_username=(os.getenv("SUPPORT_USERNAME") or "Gamaspyowner").strip().lstrip("@"),

        # Quota
        default_base_limit=int(os.getenv("DEFAULT_BASE_LIMIT", "2")),
        referral_reward=int(os.getenv("REFERRAL_REWARD", "1")),

        # Storage
        storage_provider=os.getenv("STORAGE_PROVIDER", "local").strip().lower(),
        storage_bucket=os.getenv("STORAGE_BUCKET", "").strip(),
        storage_credentials=(os.getenv("STORAGE_CREDENTIALS") or "").strip() or None,
        storage_credentials_file=(os.getenv("STORAGE_CREDENTIALS_FILE") or "").strip() or None,
        storage_local_dir=os.getenv("STORAGE_LOCAL_DIR", "/data/uploads").strip(),
        storage_public_base_url=os.getenv("STORAGE_PUBLIC_BASE_URL", "http://localhost:8080").strip().rstrip("/"),
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024))),

        # Flows
        flow_timeout_seconds=int(os.getenv("FLOW_TIMEOUT_SECONDS", "300")),
        rate_limit_interval_sec=float(os.getenv("RATE_LIMIT_INTERVAL_SEC", "0.4")),
        auto_migrate=_env_bool("AUTO_MIGRATE", True),
    )


settings = _load_settings()
