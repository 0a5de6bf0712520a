"""
Database models for the marketplace core.

Transactional data (offers, applications, conversations, messages) and
the click fact table with its daily rollup share one database.
"""

from .offer import Offer, Application
from .click import ClickEvent, DailyAnalytics
from .conversation import Conversation, Message

__all__ = [
    "Offer",
    "Application",
    "ClickEvent",
    "DailyAnalytics",
    "Conversation",
    "Message",
]
