"""Message service - send, read, mark-as-read and attachment upload.

Callers pass a conversation that already went through the access gate
(swasthya.core.chat_access), except upload_attachment, which validates the
file first and then runs the gate itself.
"""

import logging
from typing import BinaryIO
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from swasthya.core.chat_access import get_conversation_for_chat
from swasthya.core.config import Settings
from swasthya.core.structured_logging import build_log_context
from swasthya.db.base import utcnow
from swasthya.db.enums import MessageType, UserRole
from swasthya.db.models import Conversation, Message
from swasthya.schemas.auth import UserSession
from swasthya.services import attachment_service

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_LIMIT = 100
ATTACHMENT_PREVIEW = "Attachment"


class MessageValidationError(Exception):
    """Message carries neither text nor an attachment."""
    pass


def _unread_column(role: UserRole):
    """Counter column belonging to `role`."""
    if role == UserRole.DOCTOR:
        return Conversation.unread_doctor
    return Conversation.unread_patient


def _other_role(role: UserRole) -> UserRole:
    return UserRole.PATIENT if role == UserRole.DOCTOR else UserRole.DOCTOR


def recipient_id(conversation: Conversation, sender: UserSession) -> UUID:
    return conversation.party_id(_other_role(sender.role))


def send_message(
    db: Session,
    conversation: Conversation,
    sender: UserSession,
    message_text: str | None,
    *,
    attachment_url: str | None = None,
    message_type: MessageType = MessageType.TEXT,
    preview: str | None = None,
) -> Message:
    """
    Persist a message and update the conversation in the same transaction.

    The preview moves to this message and the *recipient's* unread counter
    goes up by one (incremented in SQL so concurrent sends don't lose counts).
    The sender's counter is untouched. The same UPDATE hands out the
    message's `seq`, so the conversation row lock orders concurrent sends.

    Raises:
        MessageValidationError: blank text and no attachment
    """
    text = message_text or ""
    if not text.strip() and not attachment_url:
        raise MessageValidationError("Message text or attachment is required")

    now = utcnow()
    recipient_unread = _unread_column(_other_role(sender.role))
    db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values(
            {
                Conversation.message_count: Conversation.message_count + 1,
                Conversation.last_message: preview or text or ATTACHMENT_PREVIEW,
                Conversation.last_message_at: now,
                recipient_unread: recipient_unread + 1,
                Conversation.updated_at: now,
            }
        )
        .execution_options(synchronize_session=False)
    )
    seq = db.scalar(
        select(Conversation.message_count).where(Conversation.id == conversation.id)
    )

    message = Message(
        conversation_id=conversation.id,
        sender_role=sender.role.value,
        sender_id=sender.user_id,
        seq=seq,
        message_text=text,
        attachment_url=attachment_url,
        message_type=message_type.value,
        created_at=now,
    )
    db.add(message)
    db.commit()
    db.refresh(message)

    logger.info(
        "Message sent",
        extra=build_log_context(
            user_id=sender.user_id,
            role=sender.role.value,
            conversation_id=conversation.id,
        ),
    )
    return message


def get_sent_message(
    db: Session, conversation: Conversation, sender: UserSession, message_id: UUID
) -> Message | None:
    """A stored message, only if `sender` wrote it in `conversation`."""
    return db.scalar(
        select(Message).where(
            Message.id == message_id,
            Message.conversation_id == conversation.id,
            Message.sender_id == sender.user_id,
            Message.sender_role == sender.role.value,
        )
    )


def list_messages(
    db: Session,
    conversation: Conversation,
    limit: int = DEFAULT_MESSAGE_LIMIT,
) -> list[Message]:
    """
    Most recent `limit` messages in send order.

    Pure read; marking as read is mark_conversation_read.
    """
    newest_first = db.scalars(
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.seq.desc())
        .limit(limit)
    ).all()
    return list(reversed(newest_first))


def mark_conversation_read(db: Session, conversation: Conversation, reader: UserSession) -> int:
    """
    Mark everything the other party sent as read and zero the reader's counter.

    Messages the reader sent are left alone. Returns how many messages flipped.
    """
    now = utcnow()
    result = db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation.id,
            Message.sender_role != reader.role.value,
            Message.is_read.is_(False),
        )
        .values(is_read=True, read_at=now)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values({_unread_column(reader.role): 0})
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(conversation)
    return result.rowcount or 0


def upload_attachment(
    db: Session,
    config: Settings,
    conversation_id: UUID,
    sender: UserSession,
    *,
    filename: str,
    content_type: str | None,
    file: BinaryIO,
    file_size: int,
    message_text: str | None = None,
) -> tuple[Conversation, Message]:
    """
    Validate, store and record one attachment as a message.

    Order matters: type/size are checked before anything is written, the
    gate runs before the file is stored, and a failed database write removes
    the stored file so no orphan is left behind.

    Raises:
        AttachmentValidationError: disallowed type/extension or over the size limit
        ChatAccessError subclasses from the access gate
        AttachmentStorageError: the file could not be written
    """
    is_valid, error = attachment_service.validate_file(
        filename, content_type, file_size, config.MAX_ATTACHMENT_BYTES
    )
    if not is_valid:
        raise attachment_service.AttachmentValidationError(error)

    conversation = get_conversation_for_chat(db, conversation_id, sender)

    normalized_type = (content_type or "").split(";", 1)[0].strip().lower()
    message_type = attachment_service.classify_message_type(normalized_type)
    stored_name = attachment_service.generate_filename(filename)
    attachment_service.store_file(config, stored_name, file)
    caption = (message_text or "").strip()

    try:
        message = send_message(
            db,
            conversation,
            sender,
            caption,
            attachment_url=attachment_service.build_attachment_url(stored_name),
            message_type=message_type,
            preview=caption or f"Sent a {message_type.value}",
        )
    except Exception:
        db.rollback()
        attachment_service.delete_file(config, stored_name)
        raise

    return conversation, message


def find_message_by_attachment(db: Session, attachment_url: str) -> Message | None:
    return db.scalar(select(Message).where(Message.attachment_url == attachment_url))
