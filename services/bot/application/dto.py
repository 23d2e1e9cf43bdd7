from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Mapping


@dataclass(frozen=True)
class InboundMessageCommand:
    address: str
    text: str
    message_type: str | None = None
    interactive_data: Mapping[str, object] | None = None


class BotActionType(str, Enum):
    SEND_MESSAGE = "send_message"
    NEEDS_USER_SELECTION = "needs_user_selection"
    ASK_FULL_NAME = "ask_full_name"
    ASK_GENDER = "ask_gender"
    ASK_AGE = "ask_age"
    NEEDS_PAYMENT = "needs_payment"
    PAYMENT_SUCCESS = "payment_success_and_display_result"
    SERVER_ERROR = "server_error"


@dataclass(frozen=True)
class UserOption:
    id: int
    display_id: str
    name: str
    age: int | None
    gender: str | None
    type: str


@dataclass(frozen=True)
class BotAction:
    action: BotActionType
    message: str
    session_id: str | None = None
    users: List[UserOption] | None = None

    @classmethod
    def say(cls, message: str) -> "BotAction":
        return cls(action=BotActionType.SEND_MESSAGE, message=message)
