"""Delivery broadcaster for thread rooms, user rooms and single connections.

Delivery is best-effort and non-durable: only connections subscribed at the
moment of the call receive the event, and there is no backlog or replay.
Clients catch up on history through the REST read path.

The sender of a message is never excluded from its thread room, so every
client sees messages in the order the server persisted them.

Performance Notes:
    - Sends to all recipients run concurrently with asyncio.gather()
    - A failing recipient is logged and skipped; removing its session is
      left to that connection's own handler
"""
import asyncio
import logging
from typing import Any, List

from fastapi import WebSocket

from .manager import Recipient, SessionStore, sessions
from .schemas import ServerEvent, envelope

logger = logging.getLogger(__name__)


class Broadcaster:
    """Fans events out to the recipients described by SessionStore snapshots."""

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    async def to_thread(self, thread_id: int, event: ServerEvent, payload: Any) -> int:
        """Deliver to every connection joined to the thread, sender included.

        Returns:
            Number of connections the event was delivered to.
        """
        return await self._deliver(self.store.connections_in_thread(thread_id), event, payload)

    async def to_thread_except(
        self, thread_id: int, exclude_connection_id: str, event: ServerEvent, payload: Any
    ) -> int:
        """Deliver to a thread room minus one connection (typing relays)."""
        recipients = [
            recipient for recipient in self.store.connections_in_thread(thread_id)
            if recipient[0] != exclude_connection_id
        ]
        return await self._deliver(recipients, event, payload)

    async def to_user(self, user_id: int, event: ServerEvent, payload: Any) -> int:
        """Deliver to every live connection of a user."""
        return await self._deliver(self.store.connections_for_user(user_id), event, payload)

    async def to_connection(self, connection_id: str, event: ServerEvent, payload: Any) -> int:
        """Deliver to a single connection if it is still live."""
        return await self._deliver(self.store.connection(connection_id), event, payload)

    async def _deliver(self, recipients: List[Recipient], event: ServerEvent, payload: Any) -> int:
        if not recipients:
            logger.debug(f"[Broadcast] No recipients for {event.value}")
            return 0

        message = envelope(event, payload)
        results = await asyncio.gather(
            *[self._safe_send(connection_id, websocket, message)
              for connection_id, websocket in recipients],
            return_exceptions=True
        )
        delivered = sum(1 for result in results if result is True)
        logger.debug(f"[Broadcast] {event.value} delivered to {delivered}/{len(recipients)}")
        return delivered

    async def _safe_send(self, connection_id: str, websocket: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection with error handling.

        Returns:
            True if successful, False if the connection failed.
        """
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection {connection_id}: {e}")
            return False


# Global instance used by the chat service, the scheduler and REST routes
broadcaster = Broadcaster(sessions)
