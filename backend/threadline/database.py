"""DuckDB connection and schema for users, threads, messages and files.

The service implements the singleton pattern so a single connection is shared
by the message gateway, the identity resolver and the file registry.

Database Schema:
    users:         id, username, email, created_at
    chat_threads:  id, user_id, title, created_at, updated_at
    messages:      id, thread_id, content, is_user, file_id, created_at
    files:         id, user_id, original_name, mimetype, size, path, created_at

Ids come from one sequence per table. Timestamps are naive UTC values
assigned by the server, never by clients. Relations between the tables are
enforced by the callers (see chat.gateway) rather than by foreign keys.

Thread Safety:
    A DuckDB connection must not be used from two threads at once. Every
    statement and every transaction runs while holding ``lock`` (re-entrant),
    which also makes multi-statement transactions atomic with respect to
    other coroutines and threads.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional, Sequence

import duckdb

logger = logging.getLogger(__name__)

_SCHEMA = (
    "CREATE SEQUENCE IF NOT EXISTS users_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS threads_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS files_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER DEFAULT nextval('users_seq') PRIMARY KEY,
        username VARCHAR NOT NULL UNIQUE,
        email VARCHAR NOT NULL UNIQUE,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_threads (
        id INTEGER DEFAULT nextval('threads_seq') PRIMARY KEY,
        user_id INTEGER NOT NULL,
        title VARCHAR,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER DEFAULT nextval('messages_seq') PRIMARY KEY,
        thread_id INTEGER NOT NULL,
        content VARCHAR NOT NULL,
        is_user BOOLEAN NOT NULL,
        file_id INTEGER,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        id INTEGER DEFAULT nextval('files_seq') PRIMARY KEY,
        user_id INTEGER NOT NULL,
        original_name VARCHAR NOT NULL,
        mimetype VARCHAR NOT NULL,
        size BIGINT NOT NULL,
        path VARCHAR NOT NULL,
        created_at TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_thread_id ON messages(thread_id)",
    "CREATE INDEX IF NOT EXISTS idx_chat_threads_user_id ON chat_threads(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_files_user_id ON files(user_id)",
)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage representation)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """Singleton owner of the shared DuckDB connection.

    Attributes:
        _instance: Singleton instance.
        _db_path: Path to the DuckDB file, or ":memory:".
        lock: Re-entrant lock serializing all access to the connection.
    """

    _instance: Optional["Database"] = None
    _db_path: str = "threadline.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        if db_path:
            self._db_path = db_path
        self.lock = threading.RLock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "Database":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call). When
                omitted, the configured ``database.path`` is used.
        """
        if cls._instance is None:
            if db_path is None:
                from threadline.config import get_config
                db_path = get_config().database.path
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and forget the singleton (used by tests)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    @property
    def path(self) -> str:
        return self._db_path

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
            logger.info("Opened DuckDB database at %s", self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        """Create sequences, tables and indexes. Idempotent."""
        with self.lock:
            conn = self._get_connection()
            for statement in _SCHEMA:
                conn.execute(statement)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        with self.lock:
            return self._get_connection().execute(sql, list(params)).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        with self.lock:
            return self._get_connection().execute(sql, list(params)).fetchall()

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Run a block of statements atomically.

        Commits when the block exits normally, rolls back and re-raises
        otherwise.
        """
        with self.lock:
            conn = self._get_connection()
            conn.begin()
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            else:
                conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        with self.lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
