"""Session store and thread membership registry for live WebSocket connections.

This module tracks which authenticated user owns which live connection and
which thread rooms each connection has joined.

Key features:
    - One Session per accepted connection, keyed by a server-generated id
    - Personal user room: every connection of a user, for user-scoped events
    - Thread rooms: idempotent join/leave, no ownership check at join time
    - Snapshot views for the Broadcaster (copies, never the live sets)
    - All memberships dropped together with the session on disconnect

Ownership:
    A session and its memberships are only mutated by the handler of the
    connection they describe. The Broadcaster and the scheduler read
    snapshots; they never write.

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from fastapi import WebSocket

from .schemas import User

logger = logging.getLogger(__name__)

# (connection_id, websocket) pair handed to the Broadcaster
Recipient = Tuple[str, WebSocket]


@dataclass
class Session:
    """A live, authenticated connection.

    Attributes:
        connection_id: Server-generated identifier of the connection.
        user: Identity snapshot taken when the credential was validated.
        websocket: The underlying connection.
        joined_threads: Thread rooms this connection is subscribed to.
    """
    connection_id: str
    user: User
    websocket: WebSocket
    joined_threads: Set[int] = field(default_factory=set)

    @property
    def user_id(self) -> int:
        return self.user.id


class SessionStore:
    """Owned table ``connection_id -> Session`` plus room indexes."""

    def __init__(self) -> None:
        # connection_id -> Session
        self._sessions: Dict[str, Session] = {}

        # thread_id -> connection ids joined to that thread room
        self._thread_rooms: Dict[int, Set[str]] = {}

        # user_id -> connection ids in that user's personal room
        self._user_rooms: Dict[int, Set[str]] = {}

    async def connect(self, websocket: WebSocket, user: User) -> Session:
        """Accept an authenticated WebSocket and register its session.

        Args:
            websocket: Connection whose credential was already validated.
            user: Identity resolved from the credential.

        Returns:
            The new Session, already in the user's personal room.
        """
        await websocket.accept()

        # SECURITY: connection ids are generated here, never client-provided
        session = Session(
            connection_id=str(uuid.uuid4()),
            user=user,
            websocket=websocket,
        )
        self._sessions[session.connection_id] = session
        self._user_rooms.setdefault(user.id, set()).add(session.connection_id)

        logger.info(
            f"[Sessions] User {user.id} connected as {session.connection_id} "
            f"({len(self._user_rooms[user.id])} connection(s) for this user)"
        )
        return session

    def disconnect(self, connection_id: str) -> Optional[Session]:
        """Drop a session and every room membership it holds.

        Returns:
            The removed Session, or None if it was already gone.
        """
        session = self._sessions.pop(connection_id, None)
        if session is None:
            return None

        for thread_id in session.joined_threads:
            self._discard(self._thread_rooms, thread_id, connection_id)
        session.joined_threads.clear()
        self._discard(self._user_rooms, session.user_id, connection_id)

        logger.info(f"[Sessions] User {session.user_id} disconnected ({connection_id})")
        return session

    @staticmethod
    def _discard(rooms: Dict[int, Set[str]], key: int, connection_id: str) -> None:
        members = rooms.get(key)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del rooms[key]

    def get(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    # =========================================================================
    # Thread membership
    # =========================================================================

    def join(self, connection_id: str, thread_id: int) -> bool:
        """Add a connection to a thread room. Idempotent.

        No ownership check happens here; access control is enforced when
        messages are written or read.

        Returns:
            True if the connection was not yet a member.
        """
        session = self._sessions.get(connection_id)
        if session is None:
            return False
        if thread_id in session.joined_threads:
            return False
        session.joined_threads.add(thread_id)
        self._thread_rooms.setdefault(thread_id, set()).add(connection_id)
        logger.info(f"[Sessions] User {session.user_id} joined thread {thread_id}")
        return True

    def leave(self, connection_id: str, thread_id: int) -> bool:
        """Remove a connection from a thread room. No-op if not joined.

        Returns:
            True if the connection was a member.
        """
        session = self._sessions.get(connection_id)
        if session is None or thread_id not in session.joined_threads:
            return False
        session.joined_threads.discard(thread_id)
        self._discard(self._thread_rooms, thread_id, connection_id)
        logger.info(f"[Sessions] User {session.user_id} left thread {thread_id}")
        return True

    # =========================================================================
    # Snapshot views
    # =========================================================================

    def connections_in_thread(self, thread_id: int) -> List[Recipient]:
        """Snapshot of the connections currently joined to a thread room."""
        return self._recipients(self._thread_rooms.get(thread_id, ()))

    def connections_for_user(self, user_id: int) -> List[Recipient]:
        """Snapshot of every live connection of a user."""
        return self._recipients(self._user_rooms.get(user_id, ()))

    def connection(self, connection_id: str) -> List[Recipient]:
        """Snapshot containing the given connection, or nothing if it is gone."""
        return self._recipients((connection_id,))

    def _recipients(self, connection_ids) -> List[Recipient]:
        recipients = []
        for connection_id in list(connection_ids):
            session = self._sessions.get(connection_id)
            if session is not None:
                recipients.append((connection_id, session.websocket))
        return recipients

    def thread_members(self, thread_id: int) -> Set[str]:
        return set(self._thread_rooms.get(thread_id, ()))

    def clear(self) -> None:
        """Forget every session (used by tests)."""
        self._sessions.clear()
        self._thread_rooms.clear()
        self._user_rooms.clear()


# Global singleton instance used by all WebSocket handlers
sessions = SessionStore()
