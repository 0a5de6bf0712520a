import logging
from typing import Any, Dict, List, Optional, Protocol


logger = logging.getLogger(__name__)


class LiveConnection(Protocol):
    """What the registry needs from a socket (Starlette's WebSocket fits)"""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ConnectionRegistry:
    """
    Maps each user to their single live connection.

    Owned by the app (one per app instance, one per test) rather than
    living at module level. Mutated only from the event loop thread.
    """

    def __init__(self):
        self._connections: Dict[str, LiveConnection] = {}

    def register(self, user_id: str, connection: LiveConnection) -> Optional[LiveConnection]:
        """
        Make connection the user's live connection (last write wins).

        Returns:
            The superseded connection, if any; the caller should close it.
        """
        previous = self._connections.get(user_id)
        self._connections[user_id] = connection
        if previous is not None and previous is not connection:
            logger.info(f"Connection for user {user_id} superseded by a newer one")
            return previous
        return None

    def unregister(self, user_id: str, connection: LiveConnection) -> bool:
        """
        Remove the mapping, but only if connection is still the registered one.

        A superseded socket's close handler can fire after its replacement
        registered; it must not evict the replacement.
        """
        if self._connections.get(user_id) is connection:
            del self._connections[user_id]
            return True
        return False

    def get(self, user_id: str) -> Optional[LiveConnection]:
        """Live connection of a user; None means offline"""
        return self._connections.get(user_id)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connections

    def online_user_ids(self) -> List[str]:
        return list(self._connections)

    async def send(self, user_id: str, payload: dict) -> bool:
        """
        Best-effort delivery to one user.

        Returns False when the user is offline or the send fails; never raises.
        """
        connection = self._connections.get(user_id)
        if connection is None:
            return False
        try:
            await connection.send_json(payload)
            return True
        except Exception as e:
            logger.warning(f"Send to user {user_id} failed: {e}")
            return False

    def __len__(self) -> int:
        return len(self._connections)
