"""Message persistence gateway.

The only component allowed to read or write the ``chat_threads`` and
``messages`` tables. All statements are parameterized; multi-statement writes
run inside a single DuckDB transaction.

Usage:
    gateway = MessageGateway()
    thread = gateway.create_thread(user_id=1)
    message = gateway.append_message(thread.id, 1, "hello", is_user_authored=True)
"""
import logging
from datetime import timedelta
from typing import List, Optional, Tuple

import duckdb

from threadline.database import Database, utcnow
from threadline.errors import (
    EmptyContent,
    PersistenceError,
    ThreadNotFound,
)

from .schemas import FileRef, Message, Thread, ThreadDetail, ThreadSummary

logger = logging.getLogger(__name__)

DEFAULT_THREAD_TITLE = "New Chat"

# Titles derived from a first message are cut to this many characters.
AUTOTITLE_MAX_LENGTH = 50

_MESSAGE_COLUMNS = """
    m.id, m.thread_id, m.content, m.is_user, m.created_at,
    m.file_id, f.original_name, f.mimetype
"""


def _row_to_message(row: tuple) -> Message:
    message_id, thread_id, content, is_user, created_at, file_id, file_name, file_type = row
    file_ref = None
    if file_id is not None:
        file_ref = FileRef(id=file_id, name=file_name, type=file_type)
    return Message(
        id=message_id,
        threadId=thread_id,
        content=content,
        isUser=is_user,
        createdAt=created_at,
        file=file_ref,
    )


def _row_to_thread(row: tuple) -> Thread:
    return Thread(id=row[0], userId=row[1], title=row[2], createdAt=row[3], updatedAt=row[4])


def make_title(content: str) -> str:
    """Derive a thread title from the first message of the thread."""
    content = content.strip()
    if len(content) > AUTOTITLE_MAX_LENGTH:
        return content[:AUTOTITLE_MAX_LENGTH - 3] + "..."
    return content


class MessageGateway:
    """Reads and writes threads and messages.

    The database is resolved lazily so that tests can swap the Database
    singleton between cases.
    """

    def __init__(self, db: Optional[Database] = None) -> None:
        self._db = db

    @property
    def db(self) -> Database:
        return self._db if self._db is not None else Database.get_instance()

    # =========================================================================
    # Messages
    # =========================================================================

    def append_message(
        self,
        thread_id: int,
        caller_user_id: Optional[int],
        content: str,
        is_user_authored: bool,
        attached_file_id: Optional[int] = None,
    ) -> Message:
        """Persist a message and touch the thread's updated_at atomically.

        User-authored messages require the thread to be owned by
        ``caller_user_id``. AI-authored messages only require the thread to
        exist; the triggering user message was already checked.

        Args:
            thread_id: Target thread.
            caller_user_id: Authenticated user (ignored for AI messages).
            content: Raw content; stored trimmed.
            is_user_authored: False for AI replies.
            attached_file_id: Optional attachment id.

        Returns:
            The persisted Message with server-assigned id and createdAt.

        Raises:
            EmptyContent: Content is empty after trimming. Nothing is written.
            ThreadNotFound: Thread missing, or not owned by the caller.
            PersistenceError: The database failed.
        """
        text = (content or "").strip()
        if not text:
            raise EmptyContent()

        try:
            with self.db.transaction() as conn:
                if is_user_authored:
                    owner = conn.execute(
                        "SELECT id FROM chat_threads WHERE id = ? AND user_id = ?",
                        [thread_id, caller_user_id],
                    ).fetchone()
                else:
                    owner = conn.execute(
                        "SELECT id FROM chat_threads WHERE id = ?",
                        [thread_id],
                    ).fetchone()
                if owner is None:
                    raise ThreadNotFound()

                # createdAt is strictly increasing within a thread
                last = conn.execute(
                    "SELECT max(created_at) FROM messages WHERE thread_id = ?",
                    [thread_id],
                ).fetchone()[0]
                created_at = utcnow()
                if last is not None and created_at <= last:
                    created_at = last + timedelta(microseconds=1)

                message_id = conn.execute(
                    """
                    INSERT INTO messages (thread_id, content, is_user, file_id, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    RETURNING id
                    """,
                    [thread_id, text, is_user_authored, attached_file_id, created_at],
                ).fetchone()[0]

                conn.execute(
                    "UPDATE chat_threads SET updated_at = ? WHERE id = ?",
                    [created_at, thread_id],
                )

                row = conn.execute(
                    f"""
                    SELECT {_MESSAGE_COLUMNS}
                    FROM messages m
                    LEFT JOIN files f ON m.file_id = f.id
                    WHERE m.id = ?
                    """,
                    [message_id],
                ).fetchone()
        except duckdb.Error as exc:
            logger.error("[Gateway] Failed to append message to thread %s: %s", thread_id, exc)
            raise PersistenceError("Failed to save message") from exc

        message = _row_to_message(row)
        logger.debug(
            "[Gateway] Appended message %s to thread %s (user=%s)",
            message.id, thread_id, is_user_authored,
        )
        return message

    def list_messages(self, thread_id: int) -> List[Message]:
        """All messages of a thread in (createdAt, id) order."""
        rows = self.db.fetchall(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN files f ON m.file_id = f.id
            WHERE m.thread_id = ?
            ORDER BY m.created_at ASC, m.id ASC
            """,
            [thread_id],
        )
        return [_row_to_message(row) for row in rows]

    def count_messages(self, thread_id: int) -> int:
        row = self.db.fetchone(
            "SELECT count(*) FROM messages WHERE thread_id = ?", [thread_id]
        )
        return row[0]

    # =========================================================================
    # Threads
    # =========================================================================

    def thread_belongs_to_user(self, thread_id: int, user_id: int) -> bool:
        row = self.db.fetchone(
            "SELECT id FROM chat_threads WHERE id = ? AND user_id = ?",
            [thread_id, user_id],
        )
        return row is not None

    def create_thread(self, user_id: int, title: Optional[str] = None) -> Thread:
        now = utcnow()
        with self.db.transaction() as conn:
            row = conn.execute(
                """
                INSERT INTO chat_threads (user_id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                RETURNING id, user_id, title, created_at, updated_at
                """,
                [user_id, title or DEFAULT_THREAD_TITLE, now, now],
            ).fetchone()
        thread = _row_to_thread(row)
        logger.info("[Gateway] Created thread %s for user %s", thread.id, user_id)
        return thread

    def get_thread(self, thread_id: int, user_id: int) -> ThreadDetail:
        """Return an owned thread with its messages.

        Raises:
            ThreadNotFound: Thread missing or owned by someone else.
        """
        row = self.db.fetchone(
            """
            SELECT id, user_id, title, created_at, updated_at
            FROM chat_threads
            WHERE id = ? AND user_id = ?
            """,
            [thread_id, user_id],
        )
        if row is None:
            raise ThreadNotFound()
        thread = _row_to_thread(row)
        return ThreadDetail(**thread.model_dump(), messages=self.list_messages(thread_id))

    def list_threads(
        self, user_id: int, page: int = 1, limit: int = 20
    ) -> Tuple[List[ThreadSummary], int]:
        """Page through a user's threads, most recently active first.

        Returns:
            Tuple of (threads on this page, total thread count).
        """
        offset = (page - 1) * limit
        rows = self.db.fetchall(
            """
            SELECT t.id, t.user_id, t.title, t.created_at, t.updated_at,
                   (SELECT count(*) FROM messages m WHERE m.thread_id = t.id),
                   (SELECT m.content FROM messages m WHERE m.thread_id = t.id
                    ORDER BY m.created_at DESC, m.id DESC LIMIT 1)
            FROM chat_threads t
            WHERE t.user_id = ?
            ORDER BY t.updated_at DESC, t.id DESC
            LIMIT ? OFFSET ?
            """,
            [user_id, limit, offset],
        )
        total = self.count_threads(user_id)
        threads = [
            ThreadSummary(
                id=row[0],
                userId=row[1],
                title=row[2],
                createdAt=row[3],
                updatedAt=row[4],
                messageCount=row[5],
                lastMessage=row[6],
            )
            for row in rows
        ]
        return threads, total

    def count_threads(self, user_id: int) -> int:
        row = self.db.fetchone(
            "SELECT count(*) FROM chat_threads WHERE user_id = ?", [user_id]
        )
        return row[0]

    def delete_thread(self, thread_id: int, user_id: int) -> None:
        """Delete an owned thread together with its messages.

        Raises:
            ThreadNotFound: Thread missing or owned by someone else.
        """
        with self.db.transaction() as conn:
            owner = conn.execute(
                "SELECT id FROM chat_threads WHERE id = ? AND user_id = ?",
                [thread_id, user_id],
            ).fetchone()
            if owner is None:
                raise ThreadNotFound()
            conn.execute("DELETE FROM messages WHERE thread_id = ?", [thread_id])
            conn.execute("DELETE FROM chat_threads WHERE id = ?", [thread_id])
        logger.info("[Gateway] Deleted thread %s of user %s", thread_id, user_id)

    def autotitle_thread(self, thread_id: int, content: str) -> Optional[str]:
        """Name a thread after its first message.

        Returns:
            The new title, or None when the thread already had other messages.
        """
        if self.count_messages(thread_id) != 1:
            return None
        title = make_title(content)
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE chat_threads SET title = ? WHERE id = ?", [title, thread_id]
            )
        return title


# Global instance used by the WebSocket handlers, the scheduler and REST routes
gateway = MessageGateway()
