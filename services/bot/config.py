from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from urllib.parse import quote_plus

from dotenv import load_dotenv

DEFAULT_MSG91_OUTBOUND_URL = (
    "https://control.msg91.com/api/v5/whatsapp/whatsapp-outbound-message/"
)


def _load_repo_env() -> None:
    """Load the nearest .env starting from this file upward."""
    current = Path(__file__).resolve()
    for candidate in [current.parent, *current.parents]:
        env_file = candidate / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


_load_repo_env()


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        raise ValueError(f"Environment variable {name} is required")
    return value


def _require_env_int(name: str) -> int:
    raw = _require_env(name)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name) or default
    try:
        return Decimal(raw).quantize(Decimal("0.01"))
    except InvalidOperation as exc:
        raise ValueError(f"Environment variable {name} must be a decimal") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class BotConfig:
    encryption_key_hex: str
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    session_ttl_minutes: int
    payment_amount: Decimal
    payment_method: str
    msg91_auth_key: str
    msg91_channel_id: str
    msg91_outbound_url: str
    notifier_timeout_seconds: float
    notifications_async: bool
    redis_host: str
    redis_port: int
    redis_db: int
    notification_queue_name: str
    notification_max_retries: int
    log_level: str
    database_url: str | None = None

    @property
    def database_dsn(self) -> str:
        user = quote_plus(self.db_user)
        password = quote_plus(self.db_password)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def sqlalchemy_dsn(self) -> str:
        dsn = self.database_url or self.database_dsn
        if dsn.startswith("postgresql://"):
            return dsn.replace("postgresql://", "postgresql+psycopg://", 1)
        return dsn


def load_config() -> BotConfig:
    database_url = os.getenv("BOT_DATABASE_URL") or None
    if database_url:
        # A full URL replaces the discrete connection settings
        db_host = os.getenv("BOT_DB_HOST", "")
        db_port = _env_int("BOT_DB_PORT", 5432)
        db_name = os.getenv("BOT_DB_NAME", "")
        db_user = os.getenv("BOT_DB_USER", "")
        db_password = os.getenv("BOT_DB_PASSWORD", "")
    else:
        db_host = _require_env("BOT_DB_HOST")
        db_port = _require_env_int("BOT_DB_PORT")
        db_name = _require_env("BOT_DB_NAME")
        db_user = _require_env("BOT_DB_USER")
        db_password = _require_env("BOT_DB_PASSWORD")

    return BotConfig(
        encryption_key_hex=_require_env("BOT_ENCRYPTION_KEY"),
        db_host=db_host,
        db_port=db_port,
        db_name=db_name,
        db_user=db_user,
        db_password=db_password,
        database_url=database_url,
        session_ttl_minutes=_env_int("BOT_SESSION_TTL_MINUTES", 60),
        payment_amount=_env_decimal("BOT_PAYMENT_AMOUNT", "50.00"),
        payment_method=os.getenv("BOT_PAYMENT_METHOD", "Wallet"),
        msg91_auth_key=_require_env("MSG91_AUTH_KEY"),
        msg91_channel_id=_require_env("MSG91_WHATSAPP_CHANNEL_ID"),
        msg91_outbound_url=os.getenv("MSG91_OUTBOUND_URL", DEFAULT_MSG91_OUTBOUND_URL),
        notifier_timeout_seconds=float(os.getenv("BOT_NOTIFIER_TIMEOUT_SECONDS", "10")),
        notifications_async=_env_bool("BOT_NOTIFICATIONS_ASYNC", True),
        redis_host=os.getenv("BOT_REDIS_HOST", "localhost"),
        redis_port=int(os.getenv("BOT_REDIS_PORT", "6379")),
        redis_db=int(os.getenv("BOT_REDIS_DB", "0")),
        notification_queue_name=os.getenv("BOT_NOTIFICATION_QUEUE", "notifications"),
        notification_max_retries=_env_int("BOT_NOTIFICATION_MAX_RETRIES", 3),
        log_level=os.getenv("BOT_LOG_LEVEL", "INFO").upper(),
    )


def load_encryption_key() -> str:
    """Only the payload key, for tools that never touch the database."""
    return _require_env("BOT_ENCRYPTION_KEY")
