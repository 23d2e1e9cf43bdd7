from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Mapping

from sehat.payload.measurement import Measurement, parse_measurement

from services.bot.application import messages
from services.bot.application.dto import (
    BotAction,
    BotActionType,
    InboundMessageCommand,
    UserOption,
)
from services.bot.application.interfaces import (
    IdProvider,
    NotificationDispatcher,
    PayloadDecoder,
    ReportLedger,
    SessionRepository,
    UserRepository,
)
from services.bot.domain.session import (
    ConversationSession,
    SessionEvent,
    SessionStatus,
    next_status,
)
from services.bot.domain.user import Gender, NewUser, User, UserRole

LOGGER = logging.getLogger(__name__)

MEASUREMENT_PATTERN = re.compile(r"^sehat_bmi<(.+)>$", re.DOTALL)
SELECT_PATTERN = re.compile(r"^select (UID-\d{7})$", re.IGNORECASE)
NEW_PROFILE_PATTERN = re.compile(r"^new$", re.IGNORECASE)
PAYMENT_PATTERN = re.compile(r"^payment_confirmed_(.+)$", re.IGNORECASE)

MIN_NAME_LENGTH = 3
MIN_AGE = 1
MAX_AGE = 120

StateHandler = Callable[[ConversationSession, str], BotAction]


class HandleInboundMessageUseCase:
    """Runs one inbound chat message through the kiosk conversation."""

    def __init__(
        self,
        *,
        session_repository: SessionRepository,
        user_repository: UserRepository,
        ledger: ReportLedger,
        codec: PayloadDecoder,
        notifications: NotificationDispatcher,
        session_id_provider: IdProvider,
        transaction_id_provider: IdProvider,
        session_ttl: timedelta,
        payment_amount: Decimal,
        payment_method: str,
    ) -> None:
        self._sessions = session_repository
        self._users = user_repository
        self._ledger = ledger
        self._codec = codec
        self._notifications = notifications
        self._session_ids = session_id_provider
        self._transaction_ids = transaction_id_provider
        self._session_ttl = session_ttl
        self._payment_amount = payment_amount
        self._payment_method = payment_method
        self._handlers: Mapping[SessionStatus, StateHandler] = {
            SessionStatus.AWAITING_USER_SELECTION: self._on_user_selection,
            SessionStatus.AWAITING_NAME: self._on_name,
            SessionStatus.AWAITING_GENDER: self._on_gender,
            SessionStatus.AWAITING_AGE: self._on_age,
            SessionStatus.AWAITING_PAYMENT: self._on_payment_confirmation,
        }

    def execute(self, command: InboundMessageCommand) -> BotAction:
        try:
            return self._handle(command)
        except Exception:
            LOGGER.exception("Unhandled error while handling message from %s", command.address)
            if command.address:
                self._notify(command.address, messages.INTERNAL_ERROR)
            return BotAction(
                action=BotActionType.SERVER_ERROR, message="Internal server error"
            )

    def _handle(self, command: InboundMessageCommand) -> BotAction:
        address = command.address
        text = command.text.strip()
        LOGGER.info(
            "Message from %s: %r (type: %s)", address, text, command.message_type
        )

        match = MEASUREMENT_PATTERN.match(text)
        if match:
            return self._start_session(address, match.group(1))

        session = self._sessions.find_active_by_address(address)
        if session is None:
            return self._handle_without_session(address, text)

        handler = self._handlers.get(session.status)
        if handler is None:
            LOGGER.warning(
                "Unhandled status %s for session %s", session.status, session.session_id
            )
            return BotAction.say(messages.LOST_TRACK)
        return handler(session, text)

    # ---------- Entry ----------
    def _start_session(self, address: str, token: str) -> BotAction:
        measurement = parse_measurement(self._codec.decrypt(token))
        if measurement is None:
            LOGGER.error("Unreadable measurement payload from %s", address)
            return BotAction.say(messages.PAYLOAD_UNREADABLE)

        cancelled = self._sessions.cancel_active(address)
        if cancelled:
            LOGGER.info("Cancelled %d previous session(s) for %s", cancelled, address)

        now = datetime.now(timezone.utc)
        session = ConversationSession(
            session_id=self._session_ids.generate(),
            address=address,
            status=SessionStatus.AWAITING_USER_SELECTION,
            measurement=measurement.to_payload(),
            created_at=now,
            expires_at=now + self._session_ttl,
        )
        self._sessions.create(session)
        LOGGER.info(
            "Session %s opened for %s with machine %s",
            session.session_id,
            address,
            measurement.machine_id,
        )

        users = self._users.list_by_address(address)
        if users:
            return BotAction(
                action=BotActionType.NEEDS_USER_SELECTION,
                message=messages.SELECT_PROFILE,
                session_id=session.session_id,
                users=[_as_option(user) for user in users],
            )

        if not self._advance(session, SessionEvent.NO_PROFILES):
            return BotAction.say(messages.CONVERSATION_MOVED_ON)
        return BotAction(
            action=BotActionType.ASK_FULL_NAME,
            message=messages.ASK_FULL_NAME,
            session_id=session.session_id,
        )

    def _handle_without_session(self, address: str, text: str) -> BotAction:
        match = PAYMENT_PATTERN.match(text)
        if match:
            previous = self._sessions.get(match.group(1))
            if (
                previous is not None
                and previous.address == address
                and previous.status is SessionStatus.COMPLETED
            ):
                return BotAction.say(messages.PAYMENT_ALREADY_CONFIRMED)
        LOGGER.info("No active session for %s; sending help", address)
        return BotAction.say(messages.HELP)

    # ---------- Registration ----------
    def _on_name(self, session: ConversationSession, text: str) -> BotAction:
        if len(text) < MIN_NAME_LENGTH:
            return BotAction.say(messages.INVALID_NAME)

        pending = {**session.pending_profile, "full_name": text}
        if not self._advance(session, SessionEvent.NAME_GIVEN, pending_profile=pending):
            return BotAction.say(messages.CONVERSATION_MOVED_ON)
        return BotAction(
            action=BotActionType.ASK_GENDER,
            message=messages.ASK_GENDER.format(name=text),
            session_id=session.session_id,
        )

    def _on_gender(self, session: ConversationSession, text: str) -> BotAction:
        gender = Gender.parse(text)
        if gender is None:
            return BotAction.say(messages.INVALID_GENDER)

        pending = {**session.pending_profile, "gender": gender.value}
        if not self._advance(session, SessionEvent.GENDER_GIVEN, pending_profile=pending):
            return BotAction.say(messages.CONVERSATION_MOVED_ON)
        return BotAction(
            action=BotActionType.ASK_AGE,
            message=messages.ASK_AGE,
            session_id=session.session_id,
        )

    def _on_age(self, session: ConversationSession, text: str) -> BotAction:
        age = _parse_age(text)
        if age is None:
            return BotAction.say(messages.INVALID_AGE)

        full_name = session.pending_profile.get("full_name")
        gender = Gender.parse(str(session.pending_profile.get("gender") or ""))
        if not full_name or gender is None:
            LOGGER.warning("Session %s reached age without name or gender", session.session_id)
            return BotAction.say(messages.LOST_TRACK)

        role = (
            UserRole.DEPENDENT
            if self._users.list_by_address(session.address)
            else UserRole.PRIMARY
        )
        status = next_status(session.status, SessionEvent.AGE_GIVEN)
        # Only the message that wins the transition keeps its profile.
        user = self._users.register_for_session(
            NewUser(
                address=session.address,
                full_name=full_name,
                age=age,
                gender=gender,
                role=role,
            ),
            session_id=session.session_id,
            expected=session.status,
            status=status,
        )
        if user is None:
            LOGGER.warning(
                "Session %s left %s before the profile was registered",
                session.session_id,
                session.status.value,
            )
            return BotAction.say(messages.CONVERSATION_MOVED_ON)
        LOGGER.info(
            "New user created: %s (ID: %s, Type: %s) for %s",
            user.full_name,
            user.display_id,
            user.role.value,
            session.address,
        )
        return BotAction(
            action=BotActionType.NEEDS_PAYMENT,
            message=messages.PROFILE_CREATED.format(
                name=user.full_name, display_id=user.display_id
            ),
            session_id=session.session_id,
        )

    # ---------- Selection ----------
    def _on_user_selection(self, session: ConversationSession, text: str) -> BotAction:
        if NEW_PROFILE_PATTERN.match(text):
            if not self._advance(session, SessionEvent.NEW_PROFILE_REQUESTED):
                return BotAction.say(messages.CONVERSATION_MOVED_ON)
            return BotAction(
                action=BotActionType.ASK_FULL_NAME,
                message=messages.ASK_FAMILY_MEMBER_NAME,
                session_id=session.session_id,
            )

        match = SELECT_PATTERN.match(text)
        if not match:
            return BotAction.say(messages.SELECTION_REPROMPT)

        display_id = match.group(1).upper()
        user = self._users.get_by_display_id(display_id, address=session.address)
        if user is None:
            return BotAction.say(messages.UNKNOWN_DISPLAY_ID.format(display_id=display_id))

        if not self._advance(
            session, SessionEvent.USER_SELECTED, selected_user_id=user.user_id
        ):
            return BotAction.say(messages.CONVERSATION_MOVED_ON)
        LOGGER.info(
            "%s selected user %s (%s)", session.address, user.user_id, display_id
        )
        return BotAction(
            action=BotActionType.NEEDS_PAYMENT,
            message=messages.SELECTION_READY,
            session_id=session.session_id,
        )

    # ---------- Payment ----------
    def _on_payment_confirmation(
        self, session: ConversationSession, text: str
    ) -> BotAction:
        match = PAYMENT_PATTERN.match(text)
        if not match:
            return BotAction.say(messages.PAYMENT_REPROMPT)
        if match.group(1) != session.session_id:
            return BotAction.say(messages.PAYMENT_SESSION_MISMATCH)
        if session.selected_user_id is None:
            LOGGER.warning("Session %s has no bound user at payment", session.session_id)
            return BotAction.say(messages.LOST_TRACK)
        measurement = Measurement.model_validate(session.measurement)
        settlement = self._ledger.settle_session(
            session_id=session.session_id,
            user_id=session.selected_user_id,
            measurement=measurement,
            fee=self._payment_amount,
            transaction_ref=self._transaction_ids.generate(),
            payment_method=self._payment_method,
        )
        if settlement is None:
            return self._answer_settled_elsewhere(session.session_id)

        LOGGER.info(
            "Report %s created for user %s on machine %s",
            settlement.report.report_id,
            settlement.user.user_id,
            measurement.machine_id,
        )
        self._notify(
            session.address, messages.format_result_summary(settlement, measurement)
        )
        return BotAction(
            action=BotActionType.PAYMENT_SUCCESS,
            message=messages.PAYMENT_SUCCESS,
            session_id=session.session_id,
        )

    def _answer_settled_elsewhere(self, session_id: str) -> BotAction:
        current = self._sessions.get(session_id)
        if current is not None and current.status is SessionStatus.COMPLETED:
            return BotAction.say(messages.PAYMENT_ALREADY_CONFIRMED)
        return BotAction.say(messages.CONVERSATION_MOVED_ON)

    # ---------- Helpers ----------
    def _advance(
        self,
        session: ConversationSession,
        event: SessionEvent,
        *,
        selected_user_id: int | None = None,
        pending_profile: Mapping[str, Any] | None = None,
    ) -> bool:
        status = next_status(session.status, event)
        updated = self._sessions.update_status(
            session.session_id,
            expected=session.status,
            status=status,
            selected_user_id=selected_user_id,
            pending_profile=pending_profile,
        )
        if updated:
            LOGGER.info(
                "Session %s: %s -> %s",
                session.session_id,
                session.status.value,
                status.value,
            )
        else:
            LOGGER.warning(
                "Session %s left %s before %s was applied",
                session.session_id,
                session.status.value,
                event.value,
            )
        return updated

    def _notify(self, address: str, text: str) -> None:
        try:
            self._notifications.dispatch(address, text)
        except Exception:
            LOGGER.exception("Failed to dispatch notification to %s", address)


def _parse_age(text: str) -> int | None:
    try:
        age = int(text)
    except ValueError:
        return None
    if MIN_AGE <= age <= MAX_AGE:
        return age
    return None


def _as_option(user: User) -> UserOption:
    return UserOption(
        id=user.user_id,
        display_id=user.display_id,
        name=user.full_name,
        age=user.age,
        gender=user.gender,
        type=user.role.value,
    )
