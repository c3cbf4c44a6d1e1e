"""Redis pub/sub transport for chat events across processes."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from privchat.services.fanout import ConnectionRegistry, make_frame

logger = logging.getLogger(__name__)


def channel_for(prefix: str, user_id: int) -> str:
    """Return the pub/sub channel carrying events for ``user_id``."""
    return f"{prefix}{user_id}"


class RedisPublisher:
    """Publishes event frames on per-user Redis channels."""

    def __init__(self, client: redis.Redis, prefix: str) -> None:
        self._redis = client
        self._prefix = prefix

    async def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        """Publish an event; transport failures are logged, never raised."""
        frame = make_frame(event, payload)
        try:
            await self._redis.publish(channel_for(self._prefix, user_id), json.dumps(frame))
        except RedisError:
            logger.warning("Failed to publish %s for user %s", event, user_id, exc_info=True)


class RedisRelay:
    """Forwards frames from Redis channels to connections held by this process.

    A lost subscription is retried with exponential backoff until the relay
    is stopped.
    """

    def __init__(
        self,
        client: redis.Redis,
        prefix: str,
        registry: ConnectionRegistry,
        *,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
    ) -> None:
        self._redis = client
        self._prefix = prefix
        self._registry = registry
        self._retry_delay = retry_delay
        self._max_retry_delay = max_retry_delay
        self._task: asyncio.Task[None] | None = None

    def _user_id_from(self, channel: str | bytes) -> int | None:
        if isinstance(channel, bytes):
            channel = channel.decode()
        suffix = channel[len(self._prefix):]
        return int(suffix) if suffix.isdigit() else None

    async def handle(self, message: dict[str, Any]) -> None:
        """Deliver one pub/sub message to the local registry."""
        if message.get("type") != "pmessage":
            return
        user_id = self._user_id_from(message["channel"])
        if user_id is None:
            return
        data = message["data"]
        try:
            frame = json.loads(data)
        except (TypeError, ValueError):
            logger.warning("Discarding malformed frame on %s", message["channel"])
            return
        await self._registry.deliver(user_id, frame)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        try:
            await pubsub.psubscribe(f"{self._prefix}*")
            logger.info("Relaying chat events from %s*", self._prefix)
            async for message in pubsub.listen():
                await self.handle(message)
        finally:
            await pubsub.aclose()

    async def _run(self) -> None:
        delay = self._retry_delay
        while True:
            try:
                await self._listen()
            except RedisError:
                logger.warning(
                    "Redis relay lost its subscription, retrying in %.1fs", delay, exc_info=True
                )
            else:
                logger.warning("Redis relay subscription ended, retrying in %.1fs", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_retry_delay)

    async def start(self) -> None:
        """Start relaying in a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the relay task and wait for it to finish."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Redis relay stopped with an error")
