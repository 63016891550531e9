"""Attachment metadata for chat messages.

Upload storage and validation are handled elsewhere; this module tracks the
metadata rows in DuckDB and answers existence checks for the chat protocol.
"""

from .schemas import FileRecord
from .service import FileRegistry, file_registry

__all__ = [
    "FileRecord",
    "FileRegistry",
    "file_registry",
]
