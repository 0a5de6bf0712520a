"""
Factory for creating cache instances.
"""

import logging
from enum import Enum
from typing import Optional

from .strategies import CacheStrategy, RedisCache, InMemoryCache, NullCache
from marketplace_app.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(Enum):
    """Available cache backends"""
    REDIS = "redis"
    MEMORY = "memory"
    NULL = "null"


class CacheFactory:
    """
    Creates the resolution cache from settings and caches the single instance.
    """

    _instance: Optional[CacheStrategy] = None

    @classmethod
    def create(cls, backend: CacheBackend) -> CacheStrategy:
        if cls._instance is not None:
            return cls._instance

        if backend == CacheBackend.REDIS:
            import redis

            try:
                redis_client = redis.from_url(
                    settings.redis_url,
                    decode_responses=False,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                redis_client.ping()
                cls._instance = RedisCache(redis_client)
                logger.info("Redis cache initialized")

            except Exception as e:
                logger.warning(f"Redis connection failed: {e}; falling back to in-memory cache")
                cls._instance = InMemoryCache()

        elif backend == CacheBackend.MEMORY:
            cls._instance = InMemoryCache()

        elif backend == CacheBackend.NULL:
            cls._instance = NullCache()

        else:
            raise ValueError(f"Unknown cache backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
