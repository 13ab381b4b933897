"""Chat endpoints: conversations, messages, read state and attachments.

Every endpoint goes through the access gate in swasthya.core.chat_access;
the websocket relay uses the same gate.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from swasthya.core.chat_access import ChatAccessError, get_conversation_for_chat
from swasthya.core.config import Settings, get_settings
from swasthya.core.deps import get_current_session, get_db
from swasthya.core.structured_logging import build_log_context
from swasthya.routers.websocket import push_message
from swasthya.schemas.auth import UserSession
from swasthya.schemas.message import (
    ConversationRead,
    MarkReadResponse,
    MessageRead,
    MessageSend,
    UnreadCount,
)
from swasthya.services import attachment_service, conversation_service, message_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


def _access_denied(e: ChatAccessError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=str(e))


# =============================================================================
# Conversations
# =============================================================================

@router.get("/conversation/{appointment_id}", response_model=ConversationRead)
def get_or_create_conversation(
    appointment_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """
    Get the conversation for an appointment, creating it on first access.

    403 while the appointment is not confirmed; the error names the current status.
    """
    try:
        conversation = conversation_service.get_or_create_conversation(db, appointment_id, session)
    except ChatAccessError as e:
        raise _access_denied(e)
    return conversation_service.to_read(conversation)


@router.get("/conversations", response_model=list[ConversationRead])
def list_conversations(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Caller's conversations, most recent activity first."""
    conversations = conversation_service.list_conversations_for_user(db, session)
    return [conversation_service.to_read(c) for c in conversations]


# =============================================================================
# Attachments
# =============================================================================

@router.get("/attachments/{filename}")
def download_attachment(
    filename: str,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    config: Settings = Depends(get_settings),
):
    """Serve a stored attachment to a party of its (still confirmed) conversation."""
    message = message_service.find_message_by_attachment(
        db, attachment_service.build_attachment_url(filename)
    )
    if not message:
        raise HTTPException(status_code=404, detail="Attachment not found")

    try:
        get_conversation_for_chat(db, message.conversation_id, session)
    except ChatAccessError as e:
        raise _access_denied(e)

    path = attachment_service.resolve_stored_path(config, filename)
    if not path:
        raise HTTPException(status_code=404, detail="Attachment not found")
    return FileResponse(path, filename=filename)


# =============================================================================
# Messages
# =============================================================================

@router.get("/{conversation_id}", response_model=list[MessageRead])
def list_messages(
    conversation_id: UUID,
    limit: int = Query(
        message_service.DEFAULT_MESSAGE_LIMIT, ge=1, le=message_service.DEFAULT_MESSAGE_LIMIT
    ),
    mark_read: bool = Query(True),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """
    Most recent messages in ascending order.

    Marks the other party's messages as read unless mark_read=false.
    """
    try:
        conversation = get_conversation_for_chat(db, conversation_id, session)
    except ChatAccessError as e:
        raise _access_denied(e)

    if mark_read:
        message_service.mark_conversation_read(db, conversation, session)
    messages = message_service.list_messages(db, conversation, limit=limit)
    return [MessageRead.model_validate(m) for m in messages]


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
def mark_read(
    conversation_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Mark the other party's messages as read and reset the caller's unread count."""
    try:
        conversation = get_conversation_for_chat(db, conversation_id, session)
    except ChatAccessError as e:
        raise _access_denied(e)

    marked = message_service.mark_conversation_read(db, conversation, session)
    return MarkReadResponse(
        conversation_id=conversation.id,
        marked=marked,
        unread_count=UnreadCount(
            doctor=conversation.unread_doctor,
            patient=conversation.unread_patient,
        ),
    )


@router.post("/send", response_model=MessageRead, status_code=201)
async def send_message(
    body: MessageSend,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Persist a text message, then push it to the room and the recipient."""
    try:
        conversation = get_conversation_for_chat(db, body.conversation_id, session)
        message = message_service.send_message(db, conversation, session, body.message_text)
    except ChatAccessError as e:
        raise _access_denied(e)
    except message_service.MessageValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await push_message(conversation, message, session)
    return MessageRead.model_validate(message)


@router.post("/upload", response_model=MessageRead, status_code=201)
async def upload_attachment(
    request: Request,
    attachment: Annotated[UploadFile, File()],
    conversation_id: Annotated[UUID, Form(alias="conversationId")],
    message_text: Annotated[str | None, Form(alias="messageText")] = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    config: Settings = Depends(get_settings),
):
    """
    Upload one JPEG/PNG/PDF (max 5 MB) as a message.

    400 for a disallowed type or size, 403/404 from the access gate, 503 when
    the file cannot be stored. Nothing is left on disk when the request fails.
    """
    if attachment_service.request_too_large(
        request.headers.get("content-length"), config.MAX_ATTACHMENT_BYTES
    ):
        max_mb = config.MAX_ATTACHMENT_BYTES / (1024 * 1024)
        raise HTTPException(status_code=400, detail=f"File size exceeds {max_mb:.0f} MB limit")

    file_size = await run_in_threadpool(attachment_service.spooled_size, attachment.file)

    try:
        conversation, message = message_service.upload_attachment(
            db,
            config,
            conversation_id,
            session,
            filename=attachment.filename or "",
            content_type=attachment.content_type,
            file=attachment.file,
            file_size=file_size,
            message_text=message_text,
        )
    except attachment_service.AttachmentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ChatAccessError as e:
        raise _access_denied(e)
    except attachment_service.AttachmentStorageError as e:
        logger.exception(
            "Attachment storage failed",
            extra=build_log_context(user_id=session.user_id, conversation_id=conversation_id),
        )
        raise HTTPException(status_code=503, detail=str(e))

    await push_message(conversation, message, session)
    return MessageRead.model_validate(message)
