from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import JSON, Column, DateTime, Integer, String, case, delete, update
from sqlalchemy.orm import Session

from services.bot.application.interfaces import SessionRepository
from services.bot.domain.session import (
    TERMINAL_STATUSES,
    ConversationSession,
    SessionEvent,
    SessionStatus,
    next_status,
)
from services.bot.infrastructure.db import Base

_TERMINAL_VALUES = sorted(status.value for status in TERMINAL_STATUSES)
_SUPERSEDED = {
    status.value: next_status(status, SessionEvent.SUPERSEDED).value
    for status in SessionStatus
    if not status.is_terminal
}


class SessionRecord(Base):
    __tablename__ = "bot_sessions"

    session_id = Column(String, primary_key=True)
    address = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)
    measurement = Column(JSON, nullable=False)
    selected_user_id = Column(Integer, nullable=True)
    pending_profile = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class SqlSessionRepository(SessionRepository):
    """Conversation sessions; expiry is evaluated lazily in every query."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def create(self, session: ConversationSession) -> ConversationSession:
        record = SessionRecord(
            session_id=session.session_id,
            address=session.address,
            status=session.status.value,
            measurement=dict(session.measurement),
            selected_user_id=session.selected_user_id,
            pending_profile=dict(session.pending_profile) or None,
            created_at=session.created_at,
            expires_at=session.expires_at,
        )
        with self._session_factory() as db:
            db.add(record)
            db.commit()
        return session

    def get(self, session_id: str) -> ConversationSession | None:
        with self._session_factory() as db:
            record = (
                db.query(SessionRecord)
                .filter(
                    SessionRecord.session_id == session_id,
                    SessionRecord.expires_at > _utcnow(),
                )
                .one_or_none()
            )
            if record is None:
                return None
            return _to_domain(record)

    def update_status(
        self,
        session_id: str,
        *,
        expected: SessionStatus,
        status: SessionStatus,
        selected_user_id: int | None = None,
        pending_profile: Mapping[str, Any] | None = None,
    ) -> bool:
        values: dict[str, Any] = {}
        if selected_user_id is not None:
            values["selected_user_id"] = selected_user_id
        if pending_profile is not None:
            values["pending_profile"] = dict(pending_profile)

        with self._session_factory() as db:
            updated = swap_status(
                db, session_id, expected=expected, status=status, **values
            )
            db.commit()
            return updated

    def find_active_by_address(self, address: str) -> ConversationSession | None:
        with self._session_factory() as db:
            record = (
                db.query(SessionRecord)
                .filter(
                    SessionRecord.address == address,
                    SessionRecord.status.notin_(_TERMINAL_VALUES),
                    SessionRecord.expires_at > _utcnow(),
                )
                .order_by(SessionRecord.created_at.desc())
                .first()
            )
            if record is None:
                return None
            return _to_domain(record)

    def cancel_active(self, address: str) -> int:
        statement = (
            update(SessionRecord)
            .where(
                SessionRecord.address == address,
                SessionRecord.status.in_(list(_SUPERSEDED)),
            )
            .values(status=case(_SUPERSEDED, value=SessionRecord.status))
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as db:
            result = db.execute(statement)
            db.commit()
            return result.rowcount

    def purge_expired(self, before: datetime) -> int:
        statement = (
            delete(SessionRecord)
            .where(SessionRecord.expires_at < before)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as db:
            result = db.execute(statement)
            db.commit()
            return result.rowcount


def swap_status(
    db: Session,
    session_id: str,
    *,
    expected: SessionStatus,
    status: SessionStatus,
    **values: Any,
) -> bool:
    """Move an unexpired session from ``expected`` to ``status`` inside the
    caller's transaction. Returns False when another writer got there first."""
    result = db.execute(
        update(SessionRecord)
        .where(
            SessionRecord.session_id == session_id,
            SessionRecord.status == expected.value,
            SessionRecord.expires_at > _utcnow(),
        )
        .values(status=status.value, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_domain(record: SessionRecord) -> ConversationSession:
    return ConversationSession(
        session_id=record.session_id,
        address=record.address,
        status=SessionStatus(record.status),
        measurement=dict(record.measurement or {}),
        created_at=_as_utc(record.created_at),
        expires_at=_as_utc(record.expires_at),
        selected_user_id=record.selected_user_id,
        pending_profile=dict(record.pending_profile or {}),
    )
