from __future__ import annotations

import itertools
from datetime import timedelta
from decimal import Decimal

import pytest

from sehat.payload.codec import PayloadCodec

from services.bot.application.handle_inbound_message import (
    HandleInboundMessageUseCase,
)
from services.bot.infrastructure.db import create_session_factory
from services.bot.infrastructure.reports import SqlReportLedger
from services.bot.infrastructure.sessions import SqlSessionRepository
from services.bot.infrastructure.users import SqlUserRepository

KEY_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"

MEASUREMENT = {
    "height": 170.5,
    "weight": 65.2,
    "bmi": 22.45,
    "machineId": "SEHAT-PRO-007",
}


class SequenceIdProvider:
    def __init__(self, prefix: str, width: int = 0) -> None:
        self._prefix = prefix
        self._width = width
        self._counter = itertools.count(1)

    def generate(self) -> str:
        return f"{self._prefix}{next(self._counter):0{self._width}d}"


class FakeDispatcher:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def dispatch(self, address: str, text: str) -> None:
        self.sent.append((address, text))


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite+pysqlite:///:memory:")


@pytest.fixture
def codec():
    return PayloadCodec.from_hex(KEY_HEX)


@pytest.fixture
def sessions(session_factory):
    return SqlSessionRepository(session_factory=session_factory)


@pytest.fixture
def users(session_factory):
    return SqlUserRepository(
        session_factory=session_factory,
        display_id_provider=SequenceIdProvider("UID-", width=7),
    )


@pytest.fixture
def ledger(session_factory):
    return SqlReportLedger(session_factory=session_factory)


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def use_case(sessions, users, ledger, codec, dispatcher):
    return HandleInboundMessageUseCase(
        session_repository=sessions,
        user_repository=users,
        ledger=ledger,
        codec=codec,
        notifications=dispatcher,
        session_id_provider=SequenceIdProvider("sess-"),
        transaction_id_provider=SequenceIdProvider("TXN-"),
        session_ttl=timedelta(minutes=60),
        payment_amount=Decimal("50.00"),
        payment_method="Wallet",
    )


@pytest.fixture
def trigger(codec):
    def build(payload=None) -> str:
        return f"sehat_bmi<{codec.encrypt(payload or MEASUREMENT)}>"

    return build
