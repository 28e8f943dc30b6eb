"""Redis Pub/Sub fan-out of private messages across service instances."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from community_chat.infrastructure.bus.serializer import (
    PRIVATE_MESSAGE_EVENT,
    decode_private_message,
    deserialize_event,
    serialize_private_message,
)
from community_chat.infrastructure.ws.hub import Hub
from community_chat.infrastructure.ws.protocol import Envelope

logger = logging.getLogger(__name__)


class RedisFanoutPublisher:
    """Implements infrastructure.ws.hub.MessageRouter by publishing to Redis.

    Every instance's subscriber hands the envelope to its local hub, so a
    recipient is reached whichever instance holds their connections.
    """

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def forward_private_message(self, envelope: Envelope, recipient_id: int) -> int:
        raw = serialize_private_message(envelope, recipient_id)
        return await self._redis.publish(self._channel, raw)


OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


def hub_dispatcher(hub: Hub) -> OnEventCallback:
    """Build a subscriber callback delivering published messages to ``hub``."""

    async def _dispatch(event_type: str, data: dict[str, Any]) -> None:
        if event_type != PRIVATE_MESSAGE_EVENT:
            logger.debug("Ignoring fan-out event %s", event_type)
            return
        envelope, recipient_id = decode_private_message(data)
        await hub.forward_private_message(envelope, recipient_id)

    return _dispatch


class RedisPubSubSubscriber:
    """Background task that listens to a Redis channel and dispatches events."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen(), name="redis-fanout-subscriber")
        logger.info("Fan-out subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Fan-out subscriber stopped")

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                await self.handle_raw(message["data"])
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()

    async def handle_raw(self, raw: str | bytes) -> None:
        try:
            event_type, data = deserialize_event(raw)
            await self._callback(event_type, data)
        except Exception:
            logger.exception("Error processing fan-out message")
