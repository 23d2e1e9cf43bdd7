from datetime import timedelta
from decimal import Decimal

import pytest

from services.bot.application import messages
from services.bot.application.dto import BotActionType, InboundMessageCommand
from services.bot.application.handle_inbound_message import (
    HandleInboundMessageUseCase,
)
from services.bot.domain.session import SessionStatus
from services.bot.domain.user import Gender, NewUser, UserRole
from services.bot.infrastructure.reports import ReportRecord
from services.bot.infrastructure.users import SqlUserRepository

ADDRESS = "919800000001"
OTHER_ADDRESS = "919800000002"


def _send(use_case, text, address=ADDRESS):
    return use_case.execute(InboundMessageCommand(address=address, text=text))


def _register(use_case, trigger, name="Asha Rao", gender="Female", age="29"):
    _send(use_case, trigger())
    _send(use_case, name)
    _send(use_case, gender)
    return _send(use_case, age)


def _report_count(session_factory):
    with session_factory() as db:
        return db.query(ReportRecord).count()


def test_new_address_registers_and_pays(
    use_case, trigger, sessions, users, dispatcher, session_factory
):
    started = _send(use_case, trigger())
    assert started.action is BotActionType.ASK_FULL_NAME
    assert started.session_id == "sess-1"

    asked_gender = _send(use_case, "  Asha Rao  ")
    assert asked_gender.action is BotActionType.ASK_GENDER
    assert "Asha Rao" in asked_gender.message

    assert _send(use_case, "Female").action is BotActionType.ASK_AGE

    needs_payment = _send(use_case, "29")
    assert needs_payment.action is BotActionType.NEEDS_PAYMENT
    assert "UID-0000001" in needs_payment.message
    session = sessions.get("sess-1")
    assert session.status is SessionStatus.AWAITING_PAYMENT

    (user,) = users.list_by_address(ADDRESS)
    assert user.role is UserRole.PRIMARY
    assert user.gender == "Female"
    assert user.age == 29
    assert session.selected_user_id == user.user_id

    paid = _send(use_case, "payment_confirmed_sess-1")

    assert paid.action is BotActionType.PAYMENT_SUCCESS
    assert paid.message == messages.PAYMENT_SUCCESS
    assert sessions.get("sess-1").status is SessionStatus.COMPLETED
    assert users.get_by_id(user.user_id).balance == Decimal("50.00")
    assert _report_count(session_factory) == 1
    ((address, summary),) = dispatcher.sent
    assert address == ADDRESS
    assert "UID-0000001" in summary
    assert "22.45 (Normal)" in summary
    assert "50.00" in summary


def test_mismatched_confirmation_changes_nothing(
    use_case, trigger, sessions, users, dispatcher, session_factory
):
    _register(use_case, trigger)

    reply = _send(use_case, "payment_confirmed_sess-999")

    assert reply.action is BotActionType.SEND_MESSAGE
    assert reply.message == messages.PAYMENT_SESSION_MISMATCH
    assert sessions.get("sess-1").status is SessionStatus.AWAITING_PAYMENT
    (user,) = users.list_by_address(ADDRESS)
    assert user.balance == Decimal("0.00")
    assert _report_count(session_factory) == 0
    assert dispatcher.sent == []


def test_unrelated_text_while_awaiting_payment_reprompts(use_case, trigger, sessions):
    _register(use_case, trigger)

    reply = _send(use_case, "done")

    assert reply.message == messages.PAYMENT_REPROMPT
    assert sessions.get("sess-1").status is SessionStatus.AWAITING_PAYMENT


def test_selecting_foreign_display_id_is_rejected(use_case, trigger, sessions, users):
    users.create(
        NewUser(
            address=ADDRESS,
            full_name="Asha Rao",
            age=30,
            gender=Gender.FEMALE,
            role=UserRole.PRIMARY,
        )
    )
    stranger = users.create(
        NewUser(
            address=OTHER_ADDRESS,
            full_name="Ravi Kumar",
            age=41,
            gender=Gender.MALE,
            role=UserRole.PRIMARY,
        )
    )

    started = _send(use_case, trigger())
    assert started.action is BotActionType.NEEDS_USER_SELECTION
    assert [option.name for option in started.users] == ["Asha Rao"]

    reply = _send(use_case, f"select {stranger.display_id}")

    assert reply.action is BotActionType.SEND_MESSAGE
    assert stranger.display_id in reply.message
    assert sessions.get("sess-1").status is SessionStatus.AWAITING_USER_SELECTION


def test_selecting_own_profile_binds_user(use_case, trigger, sessions):
    _register(use_case, trigger)
    _send(use_case, "payment_confirmed_sess-1")

    started = _send(use_case, trigger())
    assert started.action is BotActionType.NEEDS_USER_SELECTION
    assert started.users[0].display_id == "UID-0000001"
    assert started.users[0].type == "SuperUser"

    reply = _send(use_case, "SELECT uid-0000001")

    assert reply.action is BotActionType.NEEDS_PAYMENT
    assert reply.message == messages.SELECTION_READY
    session = sessions.get("sess-2")
    assert session.status is SessionStatus.AWAITING_PAYMENT
    assert session.selected_user_id is not None


def test_new_reply_registers_family_member(use_case, trigger, users):
    _register(use_case, trigger)

    _send(use_case, trigger())
    reply = _send(use_case, "New")
    assert reply.action is BotActionType.ASK_FULL_NAME
    _send(use_case, "Meera Rao")
    _send(use_case, "female")
    _send(use_case, "7")

    profiles = users.list_by_address(ADDRESS)
    assert [profile.full_name for profile in profiles] == ["Asha Rao", "Meera Rao"]
    assert profiles[1].role is UserRole.DEPENDENT


def test_new_submission_cancels_previous_session(use_case, trigger, sessions):
    _send(use_case, trigger())
    _send(use_case, "Asha Rao")

    _send(use_case, trigger())

    assert sessions.get("sess-1").status is SessionStatus.CANCELLED
    assert sessions.find_active_by_address(ADDRESS).session_id == "sess-2"


def test_unreadable_payload_leaves_active_session_alone(use_case, trigger, sessions):
    _send(use_case, trigger())

    reply = _send(use_case, "sehat_bmi<deadbeef:cafebabe>")

    assert reply.message == messages.PAYLOAD_UNREADABLE
    assert sessions.get("sess-1").status is SessionStatus.AWAITING_NAME


def test_payload_missing_fields_is_rejected(use_case, trigger, sessions):
    reply = _send(use_case, trigger({"height": 170.5, "weight": 65.2}))

    assert reply.message == messages.PAYLOAD_UNREADABLE
    assert sessions.find_active_by_address(ADDRESS) is None


@pytest.mark.parametrize("name", ["", "Al", "  Jo "])
def test_short_name_is_reprompted(use_case, trigger, sessions, name):
    _send(use_case, trigger())

    reply = _send(use_case, name)

    assert reply.message == messages.INVALID_NAME
    assert sessions.get("sess-1").status is SessionStatus.AWAITING_NAME


@pytest.mark.parametrize("gender", ["robot", "f", "males"])
def test_unknown_gender_is_reprompted(use_case, trigger, sessions, gender):
    _send(use_case, trigger())
    _send(use_case, "Asha Rao")

    reply = _send(use_case, gender)

    assert reply.message == messages.INVALID_GENDER
    assert sessions.get("sess-1").status is SessionStatus.AWAITING_GENDER


@pytest.mark.parametrize("age", ["abc", "0", "121", "29.5", "-4"])
def test_out_of_range_age_is_reprompted(use_case, trigger, sessions, users, age):
    _send(use_case, trigger())
    _send(use_case, "Asha Rao")
    _send(use_case, "Female")

    reply = _send(use_case, age)

    assert reply.message == messages.INVALID_AGE
    assert sessions.get("sess-1").status is SessionStatus.AWAITING_AGE
    assert users.list_by_address(ADDRESS) == []


def test_gender_is_stored_capitalised(use_case, trigger, users):
    _register(use_case, trigger, gender="oTHer")

    (user,) = users.list_by_address(ADDRESS)
    assert user.gender == "Other"


def test_message_without_session_gets_help(use_case):
    reply = _send(use_case, "hello")

    assert reply.action is BotActionType.SEND_MESSAGE
    assert reply.message == messages.HELP


def test_resent_confirmation_is_answered_idempotently(
    use_case, trigger, users, dispatcher, session_factory
):
    _register(use_case, trigger)
    _send(use_case, "payment_confirmed_sess-1")

    reply = _send(use_case, "payment_confirmed_sess-1")

    assert reply.message == messages.PAYMENT_ALREADY_CONFIRMED
    (user,) = users.list_by_address(ADDRESS)
    assert user.balance == Decimal("50.00")
    assert _report_count(session_factory) == 1
    assert len(dispatcher.sent) == 1


def test_confirmation_for_other_address_gets_help(use_case, trigger):
    _register(use_case, trigger)
    _send(use_case, "payment_confirmed_sess-1")

    reply = _send(use_case, "payment_confirmed_sess-1", address=OTHER_ADDRESS)

    assert reply.message == messages.HELP


def test_stale_confirmation_never_settles_twice(
    use_case, trigger, sessions, users, session_factory
):
    _register(use_case, trigger)
    stale = sessions.get("sess-1")
    _send(use_case, "payment_confirmed_sess-1")

    reply = use_case._on_payment_confirmation(stale, "payment_confirmed_sess-1")

    assert reply.message == messages.PAYMENT_ALREADY_CONFIRMED
    (user,) = users.list_by_address(ADDRESS)
    assert user.balance == Decimal("50.00")
    assert _report_count(session_factory) == 1


def test_stale_reply_reports_conversation_moved_on(use_case, trigger, sessions):
    _send(use_case, trigger())
    stale = sessions.get("sess-1")
    _send(use_case, "Asha Rao")

    reply = use_case._on_name(stale, "Someone Else")

    assert reply.message == messages.CONVERSATION_MOVED_ON
    assert sessions.get("sess-1").pending_profile == {"full_name": "Asha Rao"}


def test_stale_age_reply_creates_no_second_user(use_case, trigger, sessions, users):
    _send(use_case, trigger())
    _send(use_case, "Asha Rao")
    _send(use_case, "Female")
    stale = sessions.get("sess-1")
    _send(use_case, "29")

    reply = use_case._on_age(stale, "30")

    assert reply.message == messages.CONVERSATION_MOVED_ON
    assert len(users.list_by_address(ADDRESS)) == 1


class ExplodingSessions:
    def find_active_by_address(self, address):
        raise RuntimeError("database unavailable")


class ExplodingDispatcher:
    def dispatch(self, address, text):
        raise RuntimeError("queue unavailable")


def _broken_use_case(users, ledger, codec, dispatcher):
    return HandleInboundMessageUseCase(
        session_repository=ExplodingSessions(),
        user_repository=users,
        ledger=ledger,
        codec=codec,
        notifications=dispatcher,
        session_id_provider=None,
        transaction_id_provider=None,
        session_ttl=timedelta(minutes=60),
        payment_amount=Decimal("50.00"),
        payment_method="Wallet",
    )


def test_storage_failure_returns_server_error_and_apologises(
    users, ledger, codec, dispatcher
):
    use_case = _broken_use_case(users, ledger, codec, dispatcher)

    reply = _send(use_case, "hello")

    assert reply.action is BotActionType.SERVER_ERROR
    assert dispatcher.sent == [(ADDRESS, messages.INTERNAL_ERROR)]


def test_apology_failure_does_not_escape(users, ledger, codec):
    use_case = _broken_use_case(users, ledger, codec, ExplodingDispatcher())

    reply = _send(use_case, "hello")

    assert reply.action is BotActionType.SERVER_ERROR


class QueuedIdProvider:
    def __init__(self, *ids):
        self._ids = list(ids)

    def generate(self):
        return self._ids.pop(0)


class CountingIdProvider:
    def __init__(self, prefix):
        self._prefix = prefix
        self._count = 0

    def generate(self):
        self._count += 1
        return f"{self._prefix}{self._count}"


def test_failed_registration_leaves_age_step_retryable(
    session_factory, sessions, users, ledger, codec, dispatcher, trigger
):
    users.create(
        NewUser(
            address=OTHER_ADDRESS,
            full_name="Ravi Kumar",
            age=41,
            gender=Gender.MALE,
            role=UserRole.PRIMARY,
        )
    )
    colliding_users = SqlUserRepository(
        session_factory=session_factory,
        display_id_provider=QueuedIdProvider(
            "UID-0000001", "UID-0000001", "UID-0000002"
        ),
        max_display_id_attempts=2,
    )
    use_case = HandleInboundMessageUseCase(
        session_repository=sessions,
        user_repository=colliding_users,
        ledger=ledger,
        codec=codec,
        notifications=dispatcher,
        session_id_provider=CountingIdProvider("sess-"),
        transaction_id_provider=CountingIdProvider("TXN-"),
        session_ttl=timedelta(minutes=60),
        payment_amount=Decimal("50.00"),
        payment_method="Wallet",
    )
    _send(use_case, trigger())
    _send(use_case, "Asha Rao")
    _send(use_case, "Female")

    failed = _send(use_case, "29")

    assert failed.action is BotActionType.SERVER_ERROR
    session = sessions.get("sess-1")
    assert session.status is SessionStatus.AWAITING_AGE
    assert session.selected_user_id is None
    assert users.list_by_address(ADDRESS) == []

    retried = _send(use_case, "29")

    assert retried.action is BotActionType.NEEDS_PAYMENT
    assert "UID-0000002" in retried.message
    assert _send(use_case, "payment_confirmed_sess-1").action is (
        BotActionType.PAYMENT_SUCCESS
    )
