"""Pydantic schemas for attachment metadata.

The bytes of an upload are stored by an external component; this module only
models the metadata row that messages reference through ``file_id``.
"""
from datetime import datetime

from pydantic import BaseModel, Field


class FileRecord(BaseModel):
    """Metadata for an uploaded file."""
    id: int = Field(..., description="File ID")
    user_id: int = Field(..., description="User who uploaded the file")
    original_name: str = Field(..., description="Original filename")
    mimetype: str = Field(..., description="MIME type of the file")
    size: int = Field(..., ge=0, description="File size in bytes")
    path: str = Field(..., description="Storage location of the bytes")
    created_at: datetime = Field(..., description="Upload time (UTC)")
