"""Attachment metadata registry backed by the shared DuckDB database.

Messages reference attachments by id only. The chat protocol asks the
registry whether an id exists; it does not check who uploaded the file.
"""
import logging
from typing import Optional

import duckdb

from threadline.database import Database, utcnow
from threadline.errors import PersistenceError

from .schemas import FileRecord

logger = logging.getLogger(__name__)


class FileRegistry:
    """Read and register rows of the ``files`` table."""

    def __init__(self, db: Optional[Database] = None) -> None:
        self._db = db

    @property
    def db(self) -> Database:
        return self._db if self._db is not None else Database.get_instance()

    def exists(self, file_id: int) -> bool:
        """Check whether an attachment id names a stored file.

        Raises:
            PersistenceError: The lookup itself failed.
        """
        try:
            row = self.db.fetchone("SELECT 1 FROM files WHERE id = ?", [file_id])
        except duckdb.Error as exc:
            logger.error("Failed to look up file %s: %s", file_id, exc)
            raise PersistenceError("Failed to look up file") from exc
        return row is not None

    def register(
        self,
        user_id: int,
        original_name: str,
        mimetype: str,
        size: int,
        path: str,
    ) -> FileRecord:
        """Record metadata for bytes already written by the upload component."""
        with self.db.transaction() as conn:
            row = conn.execute(
                """
                INSERT INTO files (user_id, original_name, mimetype, size, path, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING id, user_id, original_name, mimetype, size, path, created_at
                """,
                [user_id, original_name, mimetype, size, path, utcnow()],
            ).fetchone()
        logger.info("Registered file %s (%s, %d bytes) for user %s", row[0], original_name, size, user_id)
        return FileRecord(
            id=row[0],
            user_id=row[1],
            original_name=row[2],
            mimetype=row[3],
            size=row[4],
            path=row[5],
            created_at=row[6],
        )


# Global instance used by the chat service
file_registry = FileRegistry()
