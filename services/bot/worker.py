from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .config import BotConfig, load_config
from .infrastructure.db import create_session_factory
from .infrastructure.msg91 import Msg91WhatsappNotifier
from .infrastructure.queue import create_worker as build_worker
from .infrastructure.sessions import SqlSessionRepository

LOGGER = logging.getLogger(__name__)

_CONFIG: BotConfig | None = None
_NOTIFIER: Msg91WhatsappNotifier | None = None


def get_config() -> BotConfig:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def get_notifier() -> Msg91WhatsappNotifier:
    global _NOTIFIER
    if _NOTIFIER is None:
        cfg = get_config()
        _NOTIFIER = Msg91WhatsappNotifier(
            outbound_url=cfg.msg91_outbound_url,
            auth_key=cfg.msg91_auth_key,
            integrated_number=cfg.msg91_channel_id,
            timeout_seconds=cfg.notifier_timeout_seconds,
        )
    return _NOTIFIER


def deliver_notification(address: str, text: str) -> dict:
    """Send one queued WhatsApp message.

    ``NotificationError`` is left to propagate so rq marks the job failed and
    schedules the next retry.
    """
    LOGGER.info("Delivering notification to %s", address)
    return get_notifier().send(address, text)


def purge_expired_sessions(before: datetime | None = None) -> int:
    cutoff = before or datetime.now(timezone.utc)
    repository = SqlSessionRepository(
        session_factory=create_session_factory(get_config().sqlalchemy_dsn)
    )
    removed = repository.purge_expired(cutoff)
    LOGGER.info("Purged %d session(s) expired before %s", removed, cutoff.isoformat())
    return removed


def run_worker(queue_name: Optional[str] = None):
    cfg = get_config()
    worker = build_worker(cfg, queue_name=queue_name)
    LOGGER.info("Starting worker for queue: %s", queue_name or cfg.notification_queue_name)
    worker.work()
