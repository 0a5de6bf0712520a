from datetime import datetime
from typing import Optional

from pydantic import Field

from marketplace_app.schemas.base import CamelModel


class MessageResponse(CamelModel):
    """A chat message, as returned by the history endpoint and pushed in new_message"""
    id: str
    conversation_id: str
    sender_id: str
    content: str
    is_read: bool
    created_at: datetime


class ConversationResponse(CamelModel):
    id: str
    application_id: str
    creator_id: str
    company_id: str
    offer_id: str
    last_message_at: Optional[datetime] = None
    creator_unread_count: int = 0
    company_unread_count: int = 0
    created_at: Optional[datetime] = None


class StartConversationRequest(CamelModel):
    application_id: str


class StartConversationResponse(CamelModel):
    conversation_id: str
    created: bool


class SendMessageRequest(CamelModel):
    conversation_id: str
    content: str = Field(..., min_length=1)
