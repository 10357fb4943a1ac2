"""Queue status change notifications.

Staff tooling advances a doctor's queue and publishes the new QueueStatus row
as JSON on the Redis channel ``<QUEUE_CHANNEL_PREFIX>:<doctor_id>``. The
dashboard consumes them through a QueueStatusChannel: a listener task that
moves each notification into an asyncio.Queue until the channel is exited.
"""
from collections import defaultdict
from typing import AsyncIterator, Optional
import asyncio
import logging
import threading

from pydantic import ValidationError
import redis.asyncio as aioredis

from ..core.config import settings
from ..schemas.queue import QueueStatusUpdate

logger = logging.getLogger(__name__)

class RedisQueueStatusSource:
    """Subscribes to queue status notifications over Redis pub/sub."""

    def __init__(self, url: str, prefix: str):
        self.prefix = prefix
        self._client = aioredis.from_url(url, decode_responses=True)

    def channel_name(self, doctor_id: int) -> str:
        return f"{self.prefix}:{doctor_id}"

    async def subscribe(self, doctor_id: int) -> "RedisSubscription":
        pubsub = self._client.pubsub()
        channel = self.channel_name(doctor_id)
        await pubsub.subscribe(channel)
        return RedisSubscription(pubsub, channel)

    async def close(self):
        await self._client.aclose()

class RedisSubscription:
    def __init__(self, pubsub, channel: str):
        self._pubsub = pubsub
        self.channel = channel

    async def messages(self) -> AsyncIterator[QueueStatusUpdate]:
        async for message in self._pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                yield QueueStatusUpdate.model_validate_json(message["data"])
            except ValidationError as e:
                logger.warning(f"Dropping malformed queue status on {self.channel}: {e}")

    async def close(self):
        await self._pubsub.unsubscribe(self.channel)
        await self._pubsub.aclose()

class InMemoryQueueStatusHub:
    """In-process pub/sub used in place of Redis when TESTING.

    publish() may be called from any thread; each update is handed to the
    subscriber's own event loop.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers = defaultdict(list)

    async def subscribe(self, doctor_id: int) -> "MemorySubscription":
        subscription = MemorySubscription(self, doctor_id, asyncio.get_running_loop())
        with self._lock:
            self._subscribers[doctor_id].append(subscription)
        return subscription

    def publish(self, update: QueueStatusUpdate) -> int:
        """Deliver an update to the doctor's subscribers; returns how many."""
        with self._lock:
            subscribers = list(self._subscribers.get(update.doctor_id, ()))
        for subscription in subscribers:
            subscription.loop.call_soon_threadsafe(subscription.queue.put_nowait, update)
        return len(subscribers)

    def subscriber_count(self, doctor_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(doctor_id, ()))

    async def close(self):
        with self._lock:
            self._subscribers.clear()

    def _remove(self, subscription: "MemorySubscription"):
        with self._lock:
            subscribers = self._subscribers.get(subscription.doctor_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)

class MemorySubscription:
    def __init__(self, hub: InMemoryQueueStatusHub, doctor_id: int, loop):
        self._hub = hub
        self.doctor_id = doctor_id
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()

    async def messages(self) -> AsyncIterator[QueueStatusUpdate]:
        while True:
            yield await self.queue.get()

    async def close(self):
        self._hub._remove(self)

class QueueStatusChannel:
    """Long-lived listener for one doctor's queue status changes.

    Usage::

        async with QueueStatusChannel(source, doctor_id) as channel:
            update = await channel.get()

    Leaving the block cancels the listener and unsubscribes.
    """

    def __init__(self, source, doctor_id: int, maxsize: int = 0):
        self.source = source
        self.doctor_id = doctor_id
        self._updates: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subscription = None
        self._listener: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "QueueStatusChannel":
        self._subscription = await self.source.subscribe(self.doctor_id)
        self._listener = asyncio.create_task(self._listen())
        logger.debug(f"Listening for queue status of doctor {self.doctor_id}")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if not self._listener.done():
                self._listener.cancel()
                try:
                    await self._listener
                except asyncio.CancelledError:
                    pass
            elif not self._listener.cancelled() and self._listener.exception():
                logger.warning(
                    f"Queue status listener for doctor {self.doctor_id} failed: "
                    f"{self._listener.exception()}"
                )
        finally:
            await self._subscription.close()
            logger.debug(f"Stopped listening for queue status of doctor {self.doctor_id}")

    async def _listen(self):
        async for update in self._subscription.messages():
            if update.doctor_id != self.doctor_id:
                continue
            await self._updates.put(update)

    async def get(self) -> QueueStatusUpdate:
        """Next update; raises if the listener stopped."""
        if self._listener is None:
            raise RuntimeError("QueueStatusChannel used outside 'async with'")
        if not self._updates.empty():
            return self._updates.get_nowait()

        getter = asyncio.ensure_future(self._updates.get())
        try:
            await asyncio.wait({getter, self._listener}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            getter.cancel()
            raise
        if getter.done():
            return getter.result()

        getter.cancel()
        # Re-raises the listener's error, if any
        self._listener.result()
        raise ConnectionError(f"Queue status subscription for doctor {self.doctor_id} ended")

_source = None

def get_queue_status_source():
    """Queue status notification source shared by the process."""
    global _source
    if _source is None:
        if settings.TESTING:
            _source = InMemoryQueueStatusHub()
        else:
            _source = RedisQueueStatusSource(settings.REDIS_URL, settings.QUEUE_CHANNEL_PREFIX)
    return _source

async def close_queue_status_source():
    """Release the shared source; the next get_queue_status_source() builds a new one."""
    global _source
    if _source is not None:
        source, _source = _source, None
        await source.close()
