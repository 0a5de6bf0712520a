"""
Cache strategies using Strategy Pattern.

The redirect path caches resolved tracking targets here so a hot
tracking code costs one cache round-trip instead of two queries.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class CacheStrategy(ABC):
    """
    Abstract cache interface.

    Async because the production backend does network I/O. Backends
    swallow their own errors: a cache failure is a cache miss.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found (or on backend error)
        """

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        """
        Set value in cache with TTL (Time To Live).

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (default: 5 minutes)

        Returns:
            True if successful, False otherwise
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Args:
            key: Cache key

        Returns:
            True if deleted, False if key didn't exist
        """


class RedisCache(CacheStrategy):
    """Redis-backed cache shared by every web worker"""

    def __init__(self, redis_client):
        """
        Initialize Redis cache.

        Args:
            redis_client: Redis client instance (redis.Redis)
        """
        self.redis = redis_client

    async def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        try:
            value = self.redis.get(key)
            return value.decode('utf-8') if value else None
        except Exception as e:
            logger.warning(f"Redis get error: {e}")
            return None

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        """Set value in Redis with TTL (SETEX)"""
        try:
            return bool(self.redis.setex(key, ttl, value))
        except Exception as e:
            logger.warning(f"Redis set error: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from Redis"""
        try:
            return bool(self.redis.delete(key))
        except Exception as e:
            logger.warning(f"Redis delete error: {e}")
            return False


class InMemoryCache(CacheStrategy):
    """
    Per-process dict cache with lazy TTL expiry.

    Expired entries are dropped when read.
    """

    def __init__(self):
        self._cache: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._cache[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        self._cache[key] = (value, time.monotonic() + ttl)
        return True

    async def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None


class NullCache(CacheStrategy):
    """Null Object: every read is a miss"""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        return True

    async def delete(self, key: str) -> bool:
        return True
