from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey
from sqlalchemy.sql import func
from marketplace_app.database.connection import Base
from marketplace_app.models.base import new_id, utc_now


class Conversation(Base):
    """
    Chat between the creator and the company of one application.

    creator_id and company_id are both user identities, so either side
    can be looked up in the connection registry.
    """
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=new_id)
    application_id = Column(String(36), unique=True, nullable=False)
    creator_id = Column(String(36), nullable=False, index=True)
    company_id = Column(String(36), nullable=False, index=True)
    offer_id = Column(String(36), nullable=False)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    creator_unread_count = Column(Integer, nullable=False, default=0)
    company_unread_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def participant_ids(self) -> list:
        return [self.creator_id, self.company_id]

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.creator_id, self.company_id)


class Message(Base):
    """Chat message. Immutable except for the one-way is_read flip."""
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id = Column(String(36), nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
