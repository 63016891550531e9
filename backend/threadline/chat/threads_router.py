"""Thread router: REST endpoints for thread history and messages.

This module provides:
    - GET /threads: Paginated list of the caller's threads
    - POST /threads: Create a thread
    - GET /threads/{thread_id}: Thread with its ordered messages
    - DELETE /threads/{thread_id}: Delete a thread and its messages
    - POST /threads/{thread_id}/messages: Send a message (same use case as
      the ``send_message`` WebSocket event)

All endpoints require ``Authorization: Bearer <jwt>``. Threads owned by
someone else are reported as not found.
"""
import logging
import math

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from threadline.auth.dependencies import get_current_user
from threadline.errors import NotFoundError, PersistenceError, ValidationError

from .broadcaster import broadcaster
from .gateway import gateway
from .schemas import (
    CreateThreadRequest,
    Pagination,
    PostMessageRequest,
    ServerEvent,
    ThreadListResponse,
    User,
)
from .service import chat_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/threads", tags=["threads"])

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


@router.get("")
async def list_threads(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Threads per page"),
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """List the caller's threads, most recently active first.

    Returns:
        JSON with ``threads`` (each with messageCount and lastMessage) and a
        ``pagination`` block.
    """
    threads, total = gateway.list_threads(user.id, page=page, limit=limit)
    response = ThreadListResponse(
        threads=threads,
        pagination=Pagination(
            page=page, limit=limit, total=total, totalPages=total_pages(total, limit)
        ),
    )
    return JSONResponse(response.model_dump(mode="json"))


@router.post("", status_code=201)
async def create_thread(
    body: CreateThreadRequest,
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """Create a thread and notify the caller's other connections.

    Returns:
        The created thread (201 Created).
    """
    thread = gateway.create_thread(user.id, body.title)
    payload = thread.model_dump(mode="json")
    await broadcaster.to_user(user.id, ServerEvent.THREAD_CREATED, {"thread": payload})
    return JSONResponse(
        {"message": "Thread created successfully", "thread": {**payload, "messages": []}},
        status_code=201,
    )


@router.get("/{thread_id}")
async def get_thread(thread_id: int, user: User = Depends(get_current_user)) -> JSONResponse:
    """Return an owned thread with its messages in (createdAt, id) order."""
    try:
        thread = gateway.get_thread(thread_id, user.id)
    except NotFoundError as e:
        return _error(e.message, 404)
    return JSONResponse({"thread": thread.model_dump(mode="json")})


@router.delete("/{thread_id}")
async def delete_thread(thread_id: int, user: User = Depends(get_current_user)) -> JSONResponse:
    """Delete an owned thread together with its messages."""
    try:
        gateway.delete_thread(thread_id, user.id)
    except NotFoundError as e:
        return _error(e.message, 404)
    await broadcaster.to_user(user.id, ServerEvent.THREAD_DELETED, {"threadId": thread_id})
    return JSONResponse({"message": "Thread deleted successfully"})


@router.post("/{thread_id}/messages", status_code=201)
async def post_message(
    thread_id: int,
    body: PostMessageRequest,
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """Send a message to an owned thread.

    The message is broadcast to the thread room and answered by the AI
    exactly as if it had arrived over the WebSocket.

    Returns:
        The persisted user message (201), 400 on empty content, 404 when
        the thread or the attached file does not exist.
    """
    try:
        message = await chat_service.send_user_message(
            user, thread_id, body.content, body.fileId
        )
    except ValidationError as e:
        return _error(e.message, 400)
    except NotFoundError as e:
        return _error(e.message, 404)
    except PersistenceError as e:
        logger.error(f"[threads] Failed to send message to thread {thread_id}: {e.message}")
        return _error("Failed to send message", 500)

    logger.info(f"[threads] User {user.id} posted message {message.id} to thread {thread_id}")
    return JSONResponse(
        {"message": "Message sent successfully", "userMessage": message.to_payload()},
        status_code=201,
    )
