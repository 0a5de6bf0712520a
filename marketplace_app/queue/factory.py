"""
Factory for creating queue instances.
"""

import logging
from enum import Enum
from typing import Optional

from .strategies import QueueStrategy, RedisStreamQueue, InMemoryQueue
from marketplace_app.config import settings

logger = logging.getLogger(__name__)


class QueueBackend(Enum):
    """Available queue backends"""
    REDIS_STREAMS = "redis_streams"
    MEMORY = "memory"


class QueueFactory:
    """
    Creates the click queue from settings and caches the single instance.
    """

    _instance: Optional[QueueStrategy] = None

    @classmethod
    def create(cls, backend: QueueBackend) -> QueueStrategy:
        if cls._instance is not None:
            return cls._instance

        if backend == QueueBackend.REDIS_STREAMS:
            import redis

            try:
                redis_client = redis.from_url(
                    settings.redis_url,
                    decode_responses=False,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                redis_client.ping()
                cls._instance = RedisStreamQueue(redis_client, settings.queue_consumer_group)
                logger.info("Redis click queue initialized")

            except Exception as e:
                # An in-memory queue only works when the worker runs in-process
                logger.warning(f"Redis connection failed: {e}; falling back to in-memory queue")
                cls._instance = InMemoryQueue()

        elif backend == QueueBackend.MEMORY:
            cls._instance = InMemoryQueue()
            logger.info("In-memory click queue initialized")

        else:
            raise ValueError(f"Unknown queue backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
