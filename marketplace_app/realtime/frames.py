"""
Realtime wire frames.

Inbound frames are a discriminated union on "type"; anything that does
not validate is a ProtocolError and gets dropped by the router.
Outbound frames are plain dicts built by the *_event helpers.
"""

import json
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter, ValidationError, field_validator

from marketplace_app.exceptions import ProtocolError
from marketplace_app.schemas.base import CamelModel
from marketplace_app.schemas.message import MessageResponse


class ChatMessageFrame(CamelModel):
    type: Literal["chat_message"]
    conversation_id: str = Field(..., min_length=1)
    sender_id: str = Field(..., min_length=1)
    content: str

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be blank")
        return value


class TypingStartFrame(CamelModel):
    type: Literal["typing_start"]
    conversation_id: str = Field(..., min_length=1)


class TypingStopFrame(CamelModel):
    type: Literal["typing_stop"]
    conversation_id: str = Field(..., min_length=1)


class MarkReadFrame(CamelModel):
    type: Literal["mark_read"]
    conversation_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


InboundFrame = Annotated[
    Union[ChatMessageFrame, TypingStartFrame, TypingStopFrame, MarkReadFrame],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundFrame)


def parse_inbound_frame(raw: str) -> InboundFrame:
    """Parse one text frame; raises ProtocolError on anything malformed"""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Unparsable frame: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Frame must be a JSON object")

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {data.get('type')!r} frame: {e.error_count()} error(s)") from e


def new_message_event(message) -> dict:
    return {
        "type": "new_message",
        "message": MessageResponse.model_validate(message).model_dump(mode="json", by_alias=True),
    }


def user_typing_event(conversation_id: str, user_id: str) -> dict:
    return {"type": "user_typing", "conversationId": conversation_id, "userId": user_id}


def user_stop_typing_event(conversation_id: str, user_id: str) -> dict:
    return {"type": "user_stop_typing", "conversationId": conversation_id, "userId": user_id}


def messages_read_event(conversation_id: str, read_by: str) -> dict:
    return {"type": "messages_read", "conversationId": conversation_id, "readBy": read_by}
