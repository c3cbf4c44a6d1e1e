"""Real-time delivery of chat events to connected sessions."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """A live client connection able to receive JSON frames."""

    async def send_json(self, data: Any) -> None: ...


class Publisher(Protocol):
    """Anything the pipeline can hand events to."""

    async def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None: ...


def make_frame(event: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap an event payload in the frame shape sent to clients."""
    return {"event": event, "data": payload}


class ConnectionRegistry:
    """Maps user ids to their live connections within this process.

    Deliveries to one user are serialized by a per-user lock, so a client sees
    events in the order the server issued them. Delivery is best-effort: a
    connection whose send fails is dropped and the event is not retried.
    """

    def __init__(self) -> None:
        self._connections: dict[int, set[Connection]] = defaultdict(set)
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def subscribe(self, user_id: int, connection: Connection) -> None:
        """Register a connection under a user's channel."""
        self._connections[user_id].add(connection)
        logger.debug("Subscribed connection for user %s", user_id)

    def unsubscribe(self, user_id: int, connection: Connection) -> None:
        """Forget a connection; a no-op if it was never registered."""
        connections = self._connections.get(user_id)
        if connections is None:
            return
        connections.discard(connection)
        if not connections:
            self._connections.pop(user_id, None)
            self._locks.pop(user_id, None)

    def connection_count(self, user_id: int) -> int:
        """Return how many live connections a user currently has."""
        return len(self._connections.get(user_id, ()))

    async def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        """Send an event to every live connection of ``user_id``."""
        await self.deliver(user_id, make_frame(event, payload))

    async def deliver(self, user_id: int, frame: dict[str, Any]) -> None:
        """Send a prepared frame to every live connection of ``user_id``."""
        if not self._connections.get(user_id):
            return
        async with self._locks[user_id]:
            for connection in list(self._connections.get(user_id, ())):
                try:
                    await connection.send_json(frame)
                except Exception:
                    logger.warning(
                        "Dropping connection for user %s after failed %s delivery",
                        user_id,
                        frame.get("event"),
                        exc_info=True,
                    )
                    self.unsubscribe(user_id, connection)

