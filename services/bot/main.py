from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import FastAPI

from sehat.payload.codec import PayloadCodec

from services.bot.api.routes import create_router
from services.bot.application.handle_inbound_message import (
    HandleInboundMessageUseCase,
)
from services.bot.application.interfaces import NotificationDispatcher
from services.bot.config import BotConfig, load_config
from services.bot.infrastructure.db import create_session_factory
from services.bot.infrastructure.ids import DisplayIdProvider, UuidIdProvider
from services.bot.infrastructure.msg91 import Msg91WhatsappNotifier
from services.bot.infrastructure.notifications import (
    InlineNotificationDispatcher,
    RqNotificationDispatcher,
)
from services.bot.infrastructure.queue import create_queue
from services.bot.infrastructure.reports import SqlReportLedger
from services.bot.infrastructure.sessions import SqlSessionRepository
from services.bot.infrastructure.users import SqlUserRepository


def create_notification_dispatcher(cfg: BotConfig) -> NotificationDispatcher:
    if cfg.notifications_async:
        return RqNotificationDispatcher(
            create_queue(cfg),
            max_retries=cfg.notification_max_retries,
        )
    notifier = Msg91WhatsappNotifier(
        outbound_url=cfg.msg91_outbound_url,
        auth_key=cfg.msg91_auth_key,
        integrated_number=cfg.msg91_channel_id,
        timeout_seconds=cfg.notifier_timeout_seconds,
    )
    return InlineNotificationDispatcher(notifier)


def build_app(config: BotConfig | None = None) -> FastAPI:
    cfg = config or load_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"message": "pong"}

    orm_session_factory = create_session_factory(cfg.sqlalchemy_dsn)
    session_repository = SqlSessionRepository(session_factory=orm_session_factory)
    user_repository = SqlUserRepository(
        session_factory=orm_session_factory,
        display_id_provider=DisplayIdProvider(),
    )
    ledger = SqlReportLedger(session_factory=orm_session_factory)

    handle_message_use_case = HandleInboundMessageUseCase(
        session_repository=session_repository,
        user_repository=user_repository,
        ledger=ledger,
        codec=PayloadCodec.from_hex(cfg.encryption_key_hex),
        notifications=create_notification_dispatcher(cfg),
        session_id_provider=UuidIdProvider(),
        transaction_id_provider=UuidIdProvider(prefix="TXN-"),
        session_ttl=timedelta(minutes=cfg.session_ttl_minutes),
        payment_amount=cfg.payment_amount,
        payment_method=cfg.payment_method,
    )

    app.include_router(create_router(handle_message_use_case))

    return app


app = build_app()
