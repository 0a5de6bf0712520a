"""
Detached click dispatch.

The redirect endpoint hands every click to a dispatcher as a FastAPI
background task, which runs after the 302 has been sent. Contract:
dispatch() never raises. Any failure is logged here and the click is
dropped; nothing is retried in the request path.
"""

import logging
from abc import ABC, abstractmethod

from marketplace_app.config import settings
from marketplace_app.queue.models import ClickContext
from marketplace_app.queue.strategies import QueueStrategy
from marketplace_app.services.click_recorder import ClickRecorder

logger = logging.getLogger(__name__)


class ClickDispatcher(ABC):
    """Hands a captured click to whatever does the attribution write"""

    async def dispatch(self, click: ClickContext) -> None:
        try:
            await self._dispatch(click)
        except Exception:
            logger.exception(f"Error logging click for application {click.application_id}")

    @abstractmethod
    async def _dispatch(self, click: ClickContext) -> None:
        pass


class DirectClickDispatcher(ClickDispatcher):
    """Records the click in-process, right after the response is sent"""

    def __init__(self, recorder: ClickRecorder):
        self.recorder = recorder

    async def _dispatch(self, click: ClickContext) -> None:
        await self.recorder.record(click)


class QueueClickDispatcher(ClickDispatcher):
    """Publishes the click for the click worker"""

    def __init__(self, queue: QueueStrategy, queue_name: str = None):
        self.queue = queue
        self.queue_name = queue_name or settings.queue_name

    async def _dispatch(self, click: ClickContext) -> None:
        if not await self.queue.publish(self.queue_name, click):
            logger.warning(f"Click for application {click.application_id} could not be queued")
