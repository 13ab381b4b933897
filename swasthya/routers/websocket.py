"""
WebSocket router for the real-time chat relay.

Provides a WebSocket endpoint that:
1. Authenticates the connection once with the same bearer token as REST
2. Refuses unverified accounts at the handshake
3. Joins the caller's private channel and, on request, conversation rooms
4. Persists sendMessage through the message service, then broadcasts the stored row.
   A sendMessage naming a message the sender already stored (the client posted
   it over REST first) is re-broadcast as is, never stored twice

Every conversation event re-runs the access gate, so a status change on the
appointment takes effect for open connections immediately.
"""

import json
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.orm import Session

from swasthya.core.chat_access import ChatAccessError, get_conversation_for_chat
from swasthya.core.config import Settings, get_settings
from swasthya.core.deps import get_db, load_session_from_token
from swasthya.core.security import extract_bearer_token
from swasthya.core.structured_logging import build_log_context
from swasthya.core.websocket import build_frame, manager
from swasthya.db.base import utcnow
from swasthya.db.models import Conversation, Message
from swasthya.schemas.auth import UserSession
from swasthya.schemas.message import ConversationRef, MessageRead, MessageSend
from swasthya.services import message_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])

CLOSE_UNAUTHENTICATED = 4001
CLOSE_UNVERIFIED = 4003


class RelayError(Exception):
    """Client-side mistake reported back as an error frame."""

    def __init__(self, message: str, code: str = "bad_request"):
        self.code = code
        super().__init__(message)


# =============================================================================
# Push helpers (also used by the REST routers)
# =============================================================================

def message_payload(message: Message) -> dict:
    return MessageRead.model_validate(message).model_dump(mode="json", by_alias=True)


async def push_message(conversation: Conversation, message: Message, sender: UserSession) -> None:
    """Broadcast a persisted message to its room and notify the recipient's channel."""
    payload = message_payload(message)
    await manager.broadcast_to_room(conversation.id, build_frame("receiveMessage", payload))
    await push_notification(
        message_service.recipient_id(conversation, sender),
        {
            "type": "new_message",
            "conversationId": str(conversation.id),
            "senderName": sender.name,
            "message": payload,
        },
    )


async def push_notification(user_id: UUID, notification: dict) -> None:
    """Push a notification to every connection of a user."""
    await manager.send_to_user(user_id, build_frame("receiveNotification", notification))


# =============================================================================
# Event handlers
# =============================================================================

def _conversation_id(data: Any) -> UUID:
    """joinConversation sends a bare id; other events send an object."""
    if isinstance(data, str):
        data = {"conversation_id": data}
    if not isinstance(data, dict):
        raise RelayError("conversation_id is required", code="validation_error")
    return ConversationRef.model_validate(data).conversation_id


async def _send_error(websocket: WebSocket, message: str, code: str) -> None:
    await websocket.send_json(build_frame("error", {"message": message, "code": code}))


async def _handle_join(websocket, db, session, data) -> None:
    conversation = get_conversation_for_chat(db, _conversation_id(data), session)
    await manager.join_room(websocket, conversation.id)
    await websocket.send_json(
        build_frame("joinedConversation", {"conversationId": str(conversation.id)})
    )
    logger.debug(
        "Joined conversation room",
        extra=build_log_context(
            user_id=session.user_id, role=session.role.value, conversation_id=conversation.id
        ),
    )


async def _handle_leave(websocket, db, session, data) -> None:
    await manager.leave_room(websocket, _conversation_id(data))


# Keys a client may use to name a message it already stored over REST
STORED_ID_KEYS = ("messageId", "message_id", "id", "_id")


def _stored_message_id(data: dict) -> UUID | None:
    for key in STORED_ID_KEYS:
        value = data.get(key)
        if value is None:
            continue
        try:
            return UUID(str(value))
        except ValueError:
            raise RelayError(f"{key} is not a valid message id", code="validation_error")
    return None


async def _handle_send(websocket, db, session, data) -> None:
    if not isinstance(data, dict):
        raise RelayError("Message payload must be an object", code="validation_error")

    stored_id = _stored_message_id(data)
    if stored_id is None:
        body = MessageSend.model_validate(data)
        conversation = get_conversation_for_chat(db, body.conversation_id, session)
        message = message_service.send_message(db, conversation, session, body.message_text)
        await push_message(conversation, message, session)
        return

    conversation = get_conversation_for_chat(db, _conversation_id(data), session)
    message = message_service.get_sent_message(db, conversation, session, stored_id)
    if message is None:
        raise RelayError("Message not found", code="not_found")
    # Already counted and notified when it was stored
    await manager.broadcast_to_room(
        conversation.id,
        build_frame("receiveMessage", message_payload(message)),
        exclude=websocket,
    )


def _joined_conversation(websocket, db, session, data) -> Conversation:
    conversation = get_conversation_for_chat(db, _conversation_id(data), session)
    if not manager.is_in_room(websocket, conversation.id):
        raise RelayError("Join the conversation first", code="forbidden")
    return conversation


async def _handle_typing(websocket, db, session, data) -> None:
    conversation = _joined_conversation(websocket, db, session, data)
    await manager.broadcast_to_room(
        conversation.id,
        build_frame(
            "userTyping",
            {
                "conversationId": str(conversation.id),
                "userId": str(session.user_id),
                "userRole": session.role.value,
                "userName": session.name,
            },
        ),
        exclude=websocket,
    )


async def _handle_stop_typing(websocket, db, session, data) -> None:
    conversation = _joined_conversation(websocket, db, session, data)
    await manager.broadcast_to_room(
        conversation.id,
        build_frame(
            "userStoppedTyping",
            {"conversationId": str(conversation.id), "userId": str(session.user_id)},
        ),
        exclude=websocket,
    )


async def _handle_message_read(websocket, db, session, data) -> None:
    conversation = _joined_conversation(websocket, db, session, data)
    message_id = None
    if isinstance(data, dict):
        message_id = data.get("message_id") or data.get("messageId")
    await manager.broadcast_to_room(
        conversation.id,
        build_frame(
            "messageReadReceipt",
            {
                "conversationId": str(conversation.id),
                "messageId": message_id,
                "readBy": str(session.user_id),
                "readAt": utcnow().isoformat(),
            },
        ),
        exclude=websocket,
    )


HANDLERS = {
    "joinConversation": _handle_join,
    "leaveConversation": _handle_leave,
    "sendMessage": _handle_send,
    "typing": _handle_typing,
    "stopTyping": _handle_stop_typing,
    "messageRead": _handle_message_read,
}


async def _dispatch(websocket: WebSocket, db: Session, session: UserSession, raw: str) -> None:
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        await _send_error(websocket, "Frames must be JSON", "bad_request")
        return

    if not isinstance(frame, dict):
        await _send_error(websocket, "Frames must be JSON objects", "bad_request")
        return

    event = frame.get("event")
    handler = HANDLERS.get(event) if isinstance(event, str) else None
    if handler is None:
        await _send_error(websocket, f"Unknown event: {event}", "bad_request")
        return

    try:
        await handler(websocket, db, session, frame.get("data"))
    except ChatAccessError as e:
        await _send_error(websocket, str(e), e.code)
    except message_service.MessageValidationError as e:
        await _send_error(websocket, str(e), "validation_error")
    except ValidationError:
        await _send_error(websocket, "Invalid event payload", "validation_error")
    except RelayError as e:
        await _send_error(websocket, str(e), e.code)
    finally:
        # End the read transaction between events
        db.rollback()


# =============================================================================
# Endpoint
# =============================================================================

@router.websocket("/chat")
async def websocket_chat(
    websocket: WebSocket,
    token: str | None = Query(None),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """
    Real-time chat relay.

    Authenticates via:
    1. JWT token in query parameter (?token=...)
    2. Or an Authorization: Bearer header (non-browser clients)

    Frames are JSON objects {"event": ..., "data": ...}; a bare "ping"
    text frame is answered with "pong".
    """
    raw_token = token or extract_bearer_token(websocket.headers.get("authorization"))
    if not raw_token:
        await websocket.close(code=CLOSE_UNAUTHENTICATED, reason="Authentication required")
        return

    try:
        session = load_session_from_token(db, raw_token, config)
    except ValueError as e:
        await websocket.close(code=CLOSE_UNAUTHENTICATED, reason=str(e))
        return
    finally:
        db.rollback()

    if not session.is_verified:
        await websocket.close(code=CLOSE_UNVERIFIED, reason="Email verification required")
        return

    await manager.connect(websocket, session.user_id)
    logger.info(
        "Chat socket connected",
        extra=build_log_context(user_id=session.user_id, role=session.role.value),
    )

    try:
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            if data == "ping":
                await websocket.send_text("pong")
                continue

            await _dispatch(websocket, db, session, data)
    finally:
        await manager.disconnect(websocket, session.user_id)
