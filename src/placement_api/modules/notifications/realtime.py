"""
Real-time Connection Registry

Tracks live client connections per user so that the dispatcher can push
notifications. Used for delivery only: nothing here is consulted when
deciding an application's or a payment's state.
"""

import asyncio
import logging
from typing import Any, Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


class ConnectionHandle(Protocol):
    """Anything that can receive a JSON message (e.g. a FastAPI WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


class ConnectionRegistry:
    """
    Maps user IDs to their open connections.

    A user may hold several connections (one per tab or device). Writes to
    a single connection are serialized so messages never interleave.
    """

    def __init__(self) -> None:
        self._connections: dict[UUID, set[ConnectionHandle]] = {}
        self._send_locks: dict[int, asyncio.Lock] = {}

    def register(self, user_id: UUID, handle: ConnectionHandle) -> None:
        self._connections.setdefault(user_id, set()).add(handle)
        self._send_locks.setdefault(id(handle), asyncio.Lock())
        logger.info(f"Realtime client connected for user {user_id} ({self.count(user_id)} open)")

    def unregister(self, user_id: UUID, handle: ConnectionHandle | None = None) -> None:
        """Remove one connection, or every connection of the user when handle is None."""
        handles = self._connections.get(user_id)
        if not handles:
            return

        removed = set(handles) if handle is None else {handle} & handles
        for h in removed:
            handles.discard(h)
            self._send_locks.pop(id(h), None)

        if not handles:
            del self._connections[user_id]

        logger.info(f"Realtime client disconnected for user {user_id} ({self.count(user_id)} open)")

    def count(self, user_id: UUID) -> int:
        return len(self._connections.get(user_id, ()))

    def is_connected(self, user_id: UUID) -> bool:
        return self.count(user_id) > 0

    async def send(self, user_id: UUID, payload: dict) -> int:
        """
        Push a payload to every connection of a user.

        Connections that fail are dropped. Having no connection is not an
        error; the client picks the notification up from the feed instead.

        Returns:
            Number of connections the payload was written to
        """
        delivered = 0

        for handle in list(self._connections.get(user_id, ())):
            lock = self._send_locks.setdefault(id(handle), asyncio.Lock())
            try:
                async with lock:
                    await handle.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping realtime connection for user {user_id}: {e}")
                self.unregister(user_id, handle)

        return delivered


# Process-wide registry used by the WebSocket endpoint and the dispatcher
connection_registry = ConnectionRegistry()
