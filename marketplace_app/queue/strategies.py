"""
Queue strategies using Strategy Pattern.
Allows switching between different queue backends (Redis Streams, In-Memory).
"""

import json
import logging
import socket
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, List

from .models import ClickContext

logger = logging.getLogger(__name__)


class QueueStrategy(ABC):
    """
    Abstract base class for click queues.

    Producers (the redirect endpoint) publish ClickContext messages;
    the click worker consumes them in batches and acknowledges each
    click once the recorder stored it.
    """

    @abstractmethod
    async def publish(self, queue_name: str, message: ClickContext) -> bool:
        """
        Publish a message to the queue.

        Args:
            queue_name: Name of the queue
            message: ClickContext to publish

        Returns:
            True if successful, False otherwise (never raises)
        """

    @abstractmethod
    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[ClickContext]:
        """
        Consume new messages from the queue.

        Args:
            queue_name: Name of the queue
            batch_size: Maximum number of messages to retrieve
            block_time: Time to wait for messages (milliseconds)

        Returns:
            List of ClickContext messages, empty on error
        """

    @abstractmethod
    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        """
        Acknowledge messages (mark as processed).

        Args:
            queue_name: Name of the queue
            message_ids: IDs of the messages to acknowledge

        Returns:
            True if successful
        """

    @abstractmethod
    async def get_queue_length(self, queue_name: str) -> int:
        """
        Get the number of messages in the queue.

        Args:
            queue_name: Name of the queue

        Returns:
            Number of messages, 0 if unknown
        """

    async def reclaim(self, queue_name: str, min_idle_time: int, batch_size: int = 1) -> List[ClickContext]:
        """
        Take over messages that were delivered but never acknowledged.

        Args:
            queue_name: Name of the queue
            min_idle_time: Only claim messages pending this long (milliseconds)
            batch_size: Maximum number of messages to claim

        Returns:
            List of ClickContext messages; backends without a pending
            list return nothing
        """
        return []


class RedisStreamQueue(QueueStrategy):
    """
    Redis Streams implementation.

    XADD to publish, XREADGROUP to consume within a consumer group,
    XACK once processed. Unacknowledged messages stay pending and are
    taken over with XAUTOCLAIM once they have been idle long enough.
    """

    def __init__(self, redis_client, consumer_group: str = "click_workers"):
        """
        Initialize Redis Streams queue.

        Args:
            redis_client: Redis client instance (redis.Redis)
            consumer_group: Name of consumer group shared by click workers
        """
        self.redis = redis_client
        self.consumer_group = consumer_group
        self.consumer_name = f"worker-{socket.gethostname()}-{id(self)}"
        self._initialized_streams = set()

    def _ensure_stream_exists(self, queue_name: str):
        if queue_name in self._initialized_streams:
            return

        try:
            # MKSTREAM creates the stream together with the group
            self.redis.xgroup_create(
                name=queue_name,
                groupname=self.consumer_group,
                id='0',
                mkstream=True
            )
            logger.info(f"Created Redis stream: {queue_name}")
        except Exception as e:
            if "BUSYGROUP" not in str(e):
                logger.warning(f"Stream creation warning: {e}")

        self._initialized_streams.add(queue_name)

    def _parse_messages(self, stream_messages) -> List[ClickContext]:
        clicks = []
        for message_id, message_data in stream_messages or []:
            if not message_data:
                # entry was trimmed from the stream while pending
                continue
            try:
                data = json.loads(message_data[b'data'].decode('utf-8'))
                click = ClickContext(**data)
                click.message_id = message_id.decode('utf-8')
                clicks.append(click)
            except Exception as e:
                logger.warning(f"Failed to parse message {message_id}: {e}")
        return clicks

    async def publish(self, queue_name: str, message: ClickContext) -> bool:
        """Append the click to the stream (XADD)"""
        try:
            self._ensure_stream_exists(queue_name)
            self.redis.xadd(queue_name, {'data': message.model_dump_json()})
            return True
        except Exception as e:
            logger.error(f"Redis publish error: {e}")
            return False

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[ClickContext]:
        """Read messages never delivered to this group (XREADGROUP with '>')"""
        try:
            self._ensure_stream_exists(queue_name)

            messages = self.redis.xreadgroup(
                groupname=self.consumer_group,
                consumername=self.consumer_name,
                streams={queue_name: '>'},
                count=batch_size,
                block=block_time
            )
        except Exception as e:
            logger.error(f"Redis consume error: {e}")
            return []

        clicks = []
        for _stream_name, stream_messages in messages or []:
            clicks.extend(self._parse_messages(stream_messages))
        return clicks

    async def reclaim(self, queue_name: str, min_idle_time: int, batch_size: int = 1) -> List[ClickContext]:
        """Claim stale pending messages for this consumer (XAUTOCLAIM)"""
        try:
            self._ensure_stream_exists(queue_name)

            # reply is [next start id, claimed entries, (deleted ids)]
            result = self.redis.xautoclaim(
                queue_name,
                self.consumer_group,
                self.consumer_name,
                min_idle_time,
                start_id='0-0',
                count=batch_size
            )
        except Exception as e:
            logger.error(f"Redis reclaim error: {e}")
            return []

        return self._parse_messages(result[1] if result else [])

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        """Acknowledge processed messages (XACK)"""
        if not message_ids:
            return True
        try:
            self.redis.xack(queue_name, self.consumer_group, *message_ids)
            return True
        except Exception as e:
            logger.error(f"Redis ack error: {e}")
            return False

    async def get_queue_length(self, queue_name: str) -> int:
        """Stream length (XINFO STREAM)"""
        try:
            return self.redis.xinfo_stream(queue_name)['length']
        except Exception:
            return 0


class InMemoryQueue(QueueStrategy):
    """
    In-memory queue using deque.

    Not persistent and not shared between processes; meant for
    development and tests. block_time is ignored and messages are
    removed on consume, so ack is a no-op and nothing is ever pending.
    """

    def __init__(self):
        self._queues: Dict[str, deque] = {}

    def _get_queue(self, queue_name: str) -> deque:
        return self._queues.setdefault(queue_name, deque())

    async def publish(self, queue_name: str, message: ClickContext) -> bool:
        self._get_queue(queue_name).append(message)
        return True

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[ClickContext]:
        queue = self._get_queue(queue_name)
        return [queue.popleft() for _ in range(min(batch_size, len(queue)))]

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        return True

    async def get_queue_length(self, queue_name: str) -> int:
        return len(self._get_queue(queue_name))
