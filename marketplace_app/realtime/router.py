"""
Server side of the realtime channel.

One MessageRouter per app. It validates inbound frames, persists
through MessageService and fans events out through the
ConnectionRegistry. Each frame gets its own database session.
"""

import logging
from typing import Callable, Iterable, List

from sqlalchemy.orm import Session

from marketplace_app.exceptions import MarketplaceError, ProtocolError
from marketplace_app.models import Message
from marketplace_app.realtime.frames import (
    ChatMessageFrame,
    InboundFrame,
    MarkReadFrame,
    TypingStartFrame,
    TypingStopFrame,
    messages_read_event,
    new_message_event,
    parse_inbound_frame,
    user_stop_typing_event,
    user_typing_event,
)
from marketplace_app.realtime.presence import PresenceTracker
from marketplace_app.realtime.registry import ConnectionRegistry
from marketplace_app.services.message_service import MessageService

logger = logging.getLogger(__name__)


class MessageRouter:

    def __init__(
        self,
        registry: ConnectionRegistry,
        presence: PresenceTracker,
        session_factory: Callable[[], Session],
    ):
        self.registry = registry
        self.presence = presence
        self.presence.on_expire = self._on_typing_expired
        self.session_factory = session_factory

    async def handle_raw(self, user_id: str, raw: str) -> None:
        """
        Handle one text frame from user's connection.

        Never raises: a bad frame is logged and dropped and the
        connection stays open.
        """
        try:
            frame = parse_inbound_frame(raw)
        except ProtocolError as e:
            logger.warning(f"Dropped frame from user {user_id}: {e}")
            return

        try:
            await self.handle_frame(user_id, frame)
        except MarketplaceError as e:
            logger.warning(f"Dropped {frame.type} frame from user {user_id}: {e}")
        except Exception:
            logger.exception(f"Error handling {frame.type} frame from user {user_id}")

    async def handle_frame(self, user_id: str, frame: InboundFrame) -> None:
        if isinstance(frame, ChatMessageFrame):
            await self._on_chat_message(user_id, frame)
        elif isinstance(frame, TypingStartFrame):
            await self._on_typing_start(user_id, frame)
        elif isinstance(frame, TypingStopFrame):
            await self._on_typing_stop(user_id, frame)
        elif isinstance(frame, MarkReadFrame):
            await self._on_mark_read(user_id, frame)

    async def handle_disconnect(self, user_id: str) -> None:
        """Clear the user's typing state and tell their peers"""
        for conversation_id in self.presence.clear_user(user_id):
            await self._broadcast_stop_typing(conversation_id, user_id)

    async def publish_new_message(self, message: Message, participant_ids: Iterable[str]) -> int:
        """Fan out an already persisted message to every live participant"""
        return await self.fan_out(participant_ids, new_message_event(message))

    async def fan_out(self, user_ids: Iterable[str], payload: dict) -> int:
        """
        Send payload to each user that has a live connection.

        Returns:
            Number of successful deliveries
        """
        delivered = 0
        for user_id in user_ids:
            if await self.registry.send(user_id, payload):
                delivered += 1
        return delivered

    async def _on_chat_message(self, user_id: str, frame: ChatMessageFrame):
        if frame.sender_id != user_id:
            raise ProtocolError(f"senderId {frame.sender_id} does not match connection user")

        db = self.session_factory()
        try:
            service = MessageService(db)
            conversation = service.get_conversation_for(frame.conversation_id, user_id)
            message = service.create_message(conversation, user_id, frame.content)
            payload = new_message_event(message)
            participants = conversation.participant_ids
        finally:
            db.close()

        # The message is committed before anyone hears about it
        self.presence.stop_typing(frame.conversation_id, user_id)
        await self.fan_out(participants, payload)

    async def _on_typing_start(self, user_id: str, frame: TypingStartFrame):
        others = self._other_participants(frame.conversation_id, user_id)
        self.presence.start_typing(frame.conversation_id, user_id)
        await self.fan_out(others, user_typing_event(frame.conversation_id, user_id))

    async def _on_typing_stop(self, user_id: str, frame: TypingStopFrame):
        others = self._other_participants(frame.conversation_id, user_id)
        if self.presence.stop_typing(frame.conversation_id, user_id):
            await self.fan_out(others, user_stop_typing_event(frame.conversation_id, user_id))

    async def _on_mark_read(self, user_id: str, frame: MarkReadFrame):
        if frame.user_id != user_id:
            raise ProtocolError(f"userId {frame.user_id} does not match connection user")

        db = self.session_factory()
        try:
            service = MessageService(db)
            conversation = service.get_conversation_for(frame.conversation_id, user_id)
            flipped = service.mark_read(conversation, user_id)
            others = [p for p in conversation.participant_ids if p != user_id]
        finally:
            db.close()

        logger.debug(f"User {user_id} read {flipped} message(s) in {frame.conversation_id}")
        await self.fan_out(others, messages_read_event(frame.conversation_id, user_id))

    async def _on_typing_expired(self, conversation_id: str, user_id: str):
        try:
            await self._broadcast_stop_typing(conversation_id, user_id)
        except Exception:
            logger.exception(f"Failed to broadcast typing expiry for {user_id} in {conversation_id}")

    async def _broadcast_stop_typing(self, conversation_id: str, user_id: str):
        try:
            others = self._other_participants(conversation_id, user_id)
        except MarketplaceError as e:
            logger.warning(f"Typing stop not broadcast: {e}")
            return
        await self.fan_out(others, user_stop_typing_event(conversation_id, user_id))

    def _other_participants(self, conversation_id: str, user_id: str) -> List[str]:
        db = self.session_factory()
        try:
            conversation = MessageService(db).get_conversation_for(conversation_id, user_id)
            return [p for p in conversation.participant_ids if p != user_id]
        finally:
            db.close()
