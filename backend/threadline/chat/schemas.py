"""Pydantic models for threads, messages and the real-time protocol.

Field names follow the wire format (camelCase) so the same models are
serialized directly into WebSocket events and REST responses.

Every WebSocket frame, in both directions, is an envelope::

    {"type": "<event name>", "data": <payload>}
"""
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class ClientEvent(str, Enum):
    """Events a connected client may send."""
    JOIN_THREAD = "join_thread"
    LEAVE_THREAD = "leave_thread"
    SEND_MESSAGE = "send_message"
    AI_FEATURE_REQUEST = "ai_feature_request"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"


class ServerEvent(str, Enum):
    """Events the server emits to connections or rooms."""
    CONNECTED = "connected"
    MESSAGE_RECEIVED = "message_received"
    AI_TYPING = "ai_typing"
    AI_PROCESSING = "ai_processing"
    AI_FEATURE_RESULT = "ai_feature_result"
    USER_TYPING = "user_typing"
    THREAD_CREATED = "thread_created"
    THREAD_DELETED = "thread_deleted"
    ERROR = "error"


# =============================================================================
# Persistent entities
# =============================================================================


class User(BaseModel):
    """Identity snapshot bound to a connection at authentication time."""
    id: int
    username: str
    email: str


class FileRef(BaseModel):
    """Attachment summary embedded in a message."""
    id: int
    name: Optional[str] = None
    type: Optional[str] = None


class Message(BaseModel):
    """A persisted message. Append-only; ordered by (createdAt, id)."""
    id: int
    threadId: int
    content: str
    isUser: bool
    createdAt: datetime
    file: Optional[FileRef] = None

    def to_payload(self) -> dict:
        """Payload of a ``message_received`` event."""
        return self.model_dump(mode="json")


class Thread(BaseModel):
    id: int
    userId: int
    title: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime


class ThreadSummary(Thread):
    """Thread row as listed by GET /threads."""
    messageCount: int = 0
    lastMessage: Optional[str] = None


class ThreadDetail(Thread):
    """Thread with its full ordered message history."""
    messages: List[Message] = Field(default_factory=list)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class ThreadListResponse(BaseModel):
    threads: List[ThreadSummary]
    pagination: Pagination


# =============================================================================
# Client payloads
# =============================================================================


class ThreadRef(BaseModel):
    """Payload of join_thread / leave_thread / typing_start / typing_stop."""
    threadId: int


class SendMessagePayload(BaseModel):
    threadId: int
    content: str
    fileId: Optional[int] = None


class AIFeatureRequestPayload(BaseModel):
    type: str = Field(..., min_length=1)
    content: str
    threadId: Optional[int] = None


class CreateThreadRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=500)


class PostMessageRequest(BaseModel):
    content: str
    fileId: Optional[int] = None


def envelope(event: ServerEvent, payload: Any) -> dict:
    """Wrap a payload in the wire envelope."""
    return {"type": event.value, "data": payload}
