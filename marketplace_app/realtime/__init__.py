from .registry import ConnectionRegistry
from .presence import PresenceTracker
from .router import MessageRouter
from .client import ChatClient, ConnectionState, NotificationPreferences

__all__ = [
    "ConnectionRegistry",
    "PresenceTracker",
    "MessageRouter",
    "ChatClient",
    "ConnectionState",
    "NotificationPreferences",
]
