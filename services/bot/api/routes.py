from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.bot.application.dto import (
    BotAction,
    BotActionType,
    InboundMessageCommand,
    UserOption,
)
from services.bot.application.handle_inbound_message import (
    HandleInboundMessageUseCase,
)


class WebhookRequest(BaseModel):
    mobile: str | None = None
    message: str | None = None
    message_type: str | None = None
    interactive_data: Dict[str, Any] | None = None


class UserOptionResponse(BaseModel):
    id: int
    display_id: str
    name: str
    age: int | None = None
    gender: str | None = None
    type: str

    @classmethod
    def from_domain(cls, option: UserOption) -> "UserOptionResponse":
        return cls(
            id=option.id,
            display_id=option.display_id,
            name=option.name,
            age=option.age,
            gender=option.gender,
            type=option.type,
        )


class BotActionResponse(BaseModel):
    action: str
    message: str
    session_id: str | None = None
    users: List[UserOptionResponse] | None = None

    @classmethod
    def from_domain(cls, action: BotAction) -> "BotActionResponse":
        return cls(
            action=action.action.value,
            message=action.message,
            session_id=action.session_id,
            users=(
                [UserOptionResponse.from_domain(option) for option in action.users]
                if action.users is not None
                else None
            ),
        )


def create_router(handle_message_use_case: HandleInboundMessageUseCase) -> APIRouter:
    router = APIRouter(prefix="/api/bot", tags=["bot"])

    @router.post(
        "/msg91-whatsapp-webhook",
        response_model=BotActionResponse,
        response_model_exclude_none=True,
        status_code=200,
    )
    def msg91_whatsapp_webhook_endpoint(payload: WebhookRequest):
        if not payload.mobile or not payload.message:
            raise HTTPException(
                status_code=400, detail="Missing mobile number or message"
            )

        action = handle_message_use_case.execute(
            InboundMessageCommand(
                address=payload.mobile,
                text=payload.message,
                message_type=payload.message_type,
                interactive_data=payload.interactive_data,
            )
        )
        if action.action is BotActionType.SERVER_ERROR:
            return JSONResponse(
                status_code=500,
                content={"status": "error", "message": "Internal server error"},
            )
        return BotActionResponse.from_domain(action)

    return router
