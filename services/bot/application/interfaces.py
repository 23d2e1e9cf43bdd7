from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping, Protocol

if TYPE_CHECKING:
    from sehat.payload.measurement import Measurement

    from services.bot.domain.report import Report, Settlement
    from services.bot.domain.session import ConversationSession, SessionStatus
    from services.bot.domain.user import NewUser, User


class IdProvider(Protocol):
    def generate(self) -> str: ...


class PayloadDecoder(Protocol):
    def decrypt(self, blob: str) -> Any | None: ...


class SessionRepository(Protocol):
    def create(self, session: ConversationSession) -> ConversationSession: ...

    def get(self, session_id: str) -> ConversationSession | None: ...

    def update_status(
        self,
        session_id: str,
        *,
        expected: SessionStatus,
        status: SessionStatus,
        selected_user_id: int | None = None,
        pending_profile: Mapping[str, Any] | None = None,
    ) -> bool: ...

    def find_active_by_address(self, address: str) -> ConversationSession | None: ...

    def cancel_active(self, address: str) -> int: ...

    def purge_expired(self, before: datetime) -> int: ...


class UserRepository(Protocol):
    def create(self, new_user: NewUser) -> User: ...

    def register_for_session(
        self,
        new_user: NewUser,
        *,
        session_id: str,
        expected: SessionStatus,
        status: SessionStatus,
    ) -> User | None: ...

    def get_by_id(self, user_id: int) -> User | None: ...

    def get_by_display_id(self, display_id: str, *, address: str) -> User | None: ...

    def list_by_address(self, address: str) -> list[User]: ...

    def credit_balance(self, user_id: int, amount: Decimal) -> User: ...


class ReportLedger(Protocol):
    def record_completion(
        self,
        *,
        user_id: int,
        measurement: Measurement,
        fee: Decimal,
        transaction_ref: str,
        payment_method: str,
    ) -> Report: ...

    def settle_session(
        self,
        *,
        session_id: str,
        user_id: int,
        measurement: Measurement,
        fee: Decimal,
        transaction_ref: str,
        payment_method: str,
    ) -> Settlement | None: ...


class WhatsappNotifier(Protocol):
    def send(self, address: str, text: str) -> dict[str, Any]: ...


class NotificationDispatcher(Protocol):
    def dispatch(self, address: str, text: str) -> None: ...
