import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

from marketplace_app.config import settings

logger = logging.getLogger(__name__)

ExpiryHandler = Callable[[str, str], Awaitable[None]]


class PresenceTracker:
    """
    Who is typing in which conversation.

    Every typing_start (re)arms a timer; if no refresh or typing_stop
    arrives in time the entry expires and the expiry handler is called
    with (conversation_id, user_id). Must be used from the event loop.
    """

    def __init__(self, timeout_seconds: float = None, on_expire: Optional[ExpiryHandler] = None):
        self.timeout_seconds = settings.typing_timeout_seconds if timeout_seconds is None else timeout_seconds
        self.on_expire = on_expire
        self._typing: Dict[str, Dict[str, asyncio.TimerHandle]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def start_typing(self, conversation_id: str, user_id: str) -> bool:
        """
        Mark user as typing and (re)arm the expiry timer.

        Returns:
            True if the user was not already typing in this conversation
        """
        users = self._typing.setdefault(conversation_id, {})
        previous = users.get(user_id)
        if previous is not None:
            previous.cancel()

        loop = asyncio.get_running_loop()
        users[user_id] = loop.call_later(self.timeout_seconds, self._expire, conversation_id, user_id)
        return previous is None

    def stop_typing(self, conversation_id: str, user_id: str) -> bool:
        """Returns True if the user was typing"""
        users = self._typing.get(conversation_id)
        if not users or user_id not in users:
            return False

        users.pop(user_id).cancel()
        if not users:
            del self._typing[conversation_id]
        return True

    def typing_users(self, conversation_id: str) -> Set[str]:
        return set(self._typing.get(conversation_id, {}))

    def is_typing(self, conversation_id: str, user_id: str) -> bool:
        return user_id in self._typing.get(conversation_id, {})

    def clear_user(self, user_id: str) -> List[str]:
        """
        Drop every typing entry of a user (their connection went away).

        Returns:
            Conversation ids the user was typing in
        """
        cleared = [
            conversation_id
            for conversation_id, users in self._typing.items()
            if user_id in users
        ]
        for conversation_id in cleared:
            self.stop_typing(conversation_id, user_id)
        return cleared

    def close(self):
        """Cancel all timers without firing expiry handlers"""
        for users in self._typing.values():
            for handle in users.values():
                handle.cancel()
        self._typing.clear()

    def _expire(self, conversation_id: str, user_id: str):
        if not self.stop_typing(conversation_id, user_id):
            return

        logger.debug(f"Typing expired for user {user_id} in {conversation_id}")
        if self.on_expire is None:
            return

        task = asyncio.ensure_future(self.on_expire(conversation_id, user_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
