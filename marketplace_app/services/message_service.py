import logging
from datetime import datetime, timezone
from typing import List, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace_app.exceptions import (
    ApplicationNotFound,
    ConversationNotFound,
    OfferMissingError,
    PermissionDeniedError,
)
from marketplace_app.models import Application, Conversation, Message, Offer

logger = logging.getLogger(__name__)


class MessageService:
    """
    Conversation and message persistence.

    Used by the REST endpoints and by the realtime router, which opens
    one service (and session) per inbound frame.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.db.get(Conversation, conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    def get_conversation_for(self, conversation_id: str, user_id: str) -> Conversation:
        """Conversation the user is a participant of"""
        conversation = self.get_conversation(conversation_id)
        if not conversation.has_participant(user_id):
            raise PermissionDeniedError(
                f"User {user_id} is not a participant of conversation {conversation_id}"
            )
        return conversation

    def list_conversations(self, user_id: str) -> List[Conversation]:
        """Conversations the user takes part in, most recent activity first"""
        return self.db.query(Conversation).filter(
            (Conversation.creator_id == user_id) | (Conversation.company_id == user_id)
        ).order_by(
            Conversation.last_message_at.is_(None),
            Conversation.last_message_at.desc(),
        ).all()

    def start_conversation(self, application_id: str, user_id: str) -> Tuple[Conversation, bool]:
        """
        Get or create the single conversation of an application.

        Returns:
            (conversation, created)
        """
        application = self.db.get(Application, application_id)
        if application is None:
            raise ApplicationNotFound(application_id)

        existing = self.db.query(Conversation).filter(
            Conversation.application_id == application_id
        ).first()
        if existing is not None:
            if not existing.has_participant(user_id):
                raise PermissionDeniedError(f"User {user_id} cannot open this conversation")
            return existing, False

        offer = self.db.get(Offer, application.offer_id)
        if offer is None:
            raise OfferMissingError(application.id, application.offer_id)

        if user_id not in (application.creator_id, offer.company_id):
            raise PermissionDeniedError(f"User {user_id} cannot open this conversation")

        conversation = Conversation(
            application_id=application.id,
            creator_id=application.creator_id,
            company_id=offer.company_id,
            offer_id=offer.id,
            last_message_at=datetime.now(timezone.utc),
        )
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation, True

    def create_message(self, conversation: Conversation, sender_id: str, content: str) -> Message:
        """
        Persist a message, touch last_message_at and bump the
        recipient's unread counter, in one commit.
        """
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            content=content,
        )
        self.db.add(message)

        conversation.last_message_at = datetime.now(timezone.utc)
        if sender_id == conversation.creator_id:
            conversation.company_unread_count = (conversation.company_unread_count or 0) + 1
        else:
            conversation.creator_unread_count = (conversation.creator_unread_count or 0) + 1

        self.db.commit()
        self.db.refresh(message)
        return message

    def get_messages(self, conversation_id: str) -> List[Message]:
        """Message history, oldest first"""
        return self.db.query(Message).filter(
            Message.conversation_id == conversation_id
        ).order_by(Message.created_at, Message.id).all()

    def mark_read(self, conversation: Conversation, reader_id: str) -> int:
        """
        Flip the reader's unread messages (those sent by the other side)
        to read and reset the reader's unread counter.

        Returns:
            Number of messages flipped
        """
        result = self.db.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation.id,
                Message.sender_id != reader_id,
                Message.is_read == False,  # noqa: E712
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )

        if reader_id == conversation.creator_id:
            conversation.creator_unread_count = 0
        else:
            conversation.company_unread_count = 0

        self.db.commit()
        return result.rowcount
