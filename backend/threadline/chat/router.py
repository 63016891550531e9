"""WebSocket endpoint for real-time threads.

This module provides:
    - WebSocket /ws?token=<jwt>: Authenticated real-time messaging

The WebSocket protocol supports:
    - Joining and leaving thread rooms
    - Sending messages (persisted, echoed to the room, answered by the AI)
    - AI feature requests (flashcards, mind maps, quizzes)
    - Typing indicators relayed to the other members of a thread room

Every frame, in both directions, is ``{"type": <event>, "data": <payload>}``.

Protocol Message Types (client -> server):
    - join_thread: {threadId} or a bare thread id
    - leave_thread: {threadId} or a bare thread id
    - send_message: {threadId, content, fileId?}
    - ai_feature_request: {type, content, threadId?}
    - typing_start / typing_stop: {threadId}
"""
import json
import logging
from typing import Any, Optional

import pydantic
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from threadline.auth.service import identity_resolver
from threadline.errors import AuthError, ThreadlineError

from .broadcaster import broadcaster
from .manager import sessions
from .schemas import (
    AIFeatureRequestPayload,
    ClientEvent,
    SendMessagePayload,
    ServerEvent,
    ThreadRef,
    envelope,
)
from .service import chat_service

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_FORMAT = "Invalid message format"
SEND_FAILED = "Failed to send message"


def _thread_ref(data: Any) -> ThreadRef:
    """Accept both ``{"threadId": 5}`` and a bare ``5`` as payload."""
    if isinstance(data, dict):
        return ThreadRef.model_validate(data)
    return ThreadRef(threadId=data)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Bearer credential (JWT)")
) -> None:
    """WebSocket endpoint for one authenticated client.

    SECURITY MODEL:
        - The credential is validated before the connection is accepted
        - The user identity comes from the credential, never from payloads
        - Thread ownership is enforced on every write, not on join

    Protocol Flow:
        1. Client connects with ?token=...
           -> rejected: close 1008 with the authentication error as reason
           -> accepted: {type: "connected", data: {userId, username, connectionId}}
        2. Client sends join_thread -> connection receives the thread's events
        3. Client sends send_message
           -> room receives message_received (the user message)
           -> room receives ai_typing{true}, later ai_typing{false}
           -> room receives message_received (the AI reply)
        4. On disconnect -> session and memberships are dropped; pending
           AI replies still complete and are persisted
    """
    try:
        user = identity_resolver.resolve(token)
    except AuthError as e:
        logger.warning(f"[WS] Rejected connection: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    session = await sessions.connect(websocket, user)
    connection_id = session.connection_id
    logger.info(f"[WS] Connection accepted for user {user.id} ({connection_id})")

    async def send_error(message: str) -> None:
        await broadcaster.to_connection(connection_id, ServerEvent.ERROR, {"message": message})

    try:
        await websocket.send_json(envelope(ServerEvent.CONNECTED, {
            "userId": user.id,
            "username": user.username,
            "connectionId": connection_id,
        }))

        # Main message loop
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            raw = message.get("text")
            if raw is None:
                # Binary frames carry no JSON envelope
                await send_error(INVALID_FORMAT)
                continue
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await send_error(INVALID_FORMAT)
                continue
            if not isinstance(frame, dict):
                await send_error(INVALID_FORMAT)
                continue

            event = frame.get("type")
            data = frame.get("data")
            logger.debug("[WS] %s received: type=%s", connection_id, event)

            # --- JOIN / LEAVE thread rooms ---
            if event in (ClientEvent.JOIN_THREAD, ClientEvent.LEAVE_THREAD):
                try:
                    ref = _thread_ref(data)
                except pydantic.ValidationError:
                    await send_error(f"Invalid payload for {event}")
                    continue
                if event == ClientEvent.JOIN_THREAD:
                    sessions.join(connection_id, ref.threadId)
                else:
                    sessions.leave(connection_id, ref.threadId)
                continue

            # --- SEND a message ---
            if event == ClientEvent.SEND_MESSAGE:
                try:
                    payload = SendMessagePayload.model_validate(data)
                except pydantic.ValidationError:
                    await send_error(f"Invalid payload for {event}")
                    continue
                try:
                    await chat_service.send_user_message(
                        user, payload.threadId, payload.content, payload.fileId
                    )
                except ThreadlineError as e:
                    logger.info(f"[WS] send_message rejected for user {user.id}: {e.message}")
                    await send_error(e.message)
                except Exception:
                    logger.exception(f"[WS] send_message failed for user {user.id}")
                    await send_error(SEND_FAILED)
                continue

            # --- AI FEATURE request (answered to this connection only) ---
            if event == ClientEvent.AI_FEATURE_REQUEST:
                try:
                    payload = AIFeatureRequestPayload.model_validate(data)
                except pydantic.ValidationError:
                    await send_error(f"Invalid payload for {event}")
                    continue
                await chat_service.request_feature(connection_id, payload)
                continue

            # --- TYPING indicators (sender excluded) ---
            if event in (ClientEvent.TYPING_START, ClientEvent.TYPING_STOP):
                try:
                    ref = _thread_ref(data)
                except pydantic.ValidationError:
                    await send_error(f"Invalid payload for {event}")
                    continue
                await broadcaster.to_thread_except(
                    ref.threadId,
                    connection_id,
                    ServerEvent.USER_TYPING,
                    {
                        "userId": user.id,
                        "username": user.username,
                        "threadId": ref.threadId,
                        "isTyping": event == ClientEvent.TYPING_START,
                    },
                )
                continue

            logger.warning(f"[WS] Unknown event from {connection_id}: {event!r}")
            await send_error(f"Unknown event: {event}")

    except WebSocketDisconnect:
        logger.info(f"[WS] Client {connection_id} disconnected")
    finally:
        sessions.disconnect(connection_id)
