from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class SessionStatus(str, Enum):
    AWAITING_USER_SELECTION = "awaiting_user_selection"
    AWAITING_NAME = "awaiting_new_user_details_name"
    AWAITING_GENDER = "awaiting_new_user_details_gender"
    AWAITING_AGE = "awaiting_new_user_details_age"
    AWAITING_PAYMENT = "awaiting_payment_confirmation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED})


class SessionEvent(str, Enum):
    NO_PROFILES = "no_profiles"
    USER_SELECTED = "user_selected"
    NEW_PROFILE_REQUESTED = "new_profile_requested"
    NAME_GIVEN = "name_given"
    GENDER_GIVEN = "gender_given"
    AGE_GIVEN = "age_given"
    PAYMENT_CONFIRMED = "payment_confirmed"
    SUPERSEDED = "superseded"


class InvalidTransitionError(ValueError):
    """Raised when an event is not accepted in the session's current status."""


TRANSITIONS: Mapping[tuple[SessionStatus, SessionEvent], SessionStatus] = {
    (SessionStatus.AWAITING_USER_SELECTION, SessionEvent.NO_PROFILES): SessionStatus.AWAITING_NAME,
    (SessionStatus.AWAITING_USER_SELECTION, SessionEvent.USER_SELECTED): SessionStatus.AWAITING_PAYMENT,
    (SessionStatus.AWAITING_USER_SELECTION, SessionEvent.NEW_PROFILE_REQUESTED): SessionStatus.AWAITING_NAME,
    (SessionStatus.AWAITING_NAME, SessionEvent.NAME_GIVEN): SessionStatus.AWAITING_GENDER,
    (SessionStatus.AWAITING_GENDER, SessionEvent.GENDER_GIVEN): SessionStatus.AWAITING_AGE,
    (SessionStatus.AWAITING_AGE, SessionEvent.AGE_GIVEN): SessionStatus.AWAITING_PAYMENT,
    (SessionStatus.AWAITING_PAYMENT, SessionEvent.PAYMENT_CONFIRMED): SessionStatus.COMPLETED,
    **{
        (status, SessionEvent.SUPERSEDED): SessionStatus.CANCELLED
        for status in SessionStatus
        if status not in TERMINAL_STATUSES
    },
}


def next_status(current: SessionStatus, event: SessionEvent) -> SessionStatus:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"Event {event.value} is not allowed in status {current.value}"
        ) from None


@dataclass(frozen=True)
class ConversationSession:
    session_id: str
    address: str
    status: SessionStatus
    measurement: Mapping[str, Any]
    created_at: datetime
    expires_at: datetime
    selected_user_id: Optional[int] = None
    pending_profile: Mapping[str, Any] = field(default_factory=dict)
