"""Conversation service - lazy get-or-create and per-user listing."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from swasthya.core.chat_access import get_appointment_for_chat
from swasthya.core.structured_logging import build_log_context
from swasthya.db.enums import UserRole
from swasthya.db.models import Conversation
from swasthya.schemas.auth import UserSession
from swasthya.schemas.message import (
    AppointmentSummary,
    ConversationRead,
    PartyRead,
    UnreadCount,
)

logger = logging.getLogger(__name__)


def _load_options():
    return (
        joinedload(Conversation.doctor),
        joinedload(Conversation.patient),
        joinedload(Conversation.appointment),
    )


def get_conversation_by_appointment(db: Session, appointment_id: UUID) -> Conversation | None:
    return db.scalar(
        select(Conversation)
        .options(*_load_options())
        .where(Conversation.appointment_id == appointment_id)
    )


def get_or_create_conversation(
    db: Session, appointment_id: UUID, user: UserSession
) -> Conversation:
    """
    Return the appointment's conversation, creating it on first access.

    The unique index on appointment_id settles concurrent first access: the
    loser of the insert race rolls back and reads the winner's row, so every
    caller gets the same conversation.

    Raises:
        ChatAccessError subclasses from the access gate
    """
    appointment = get_appointment_for_chat(db, appointment_id, user)

    conversation = get_conversation_by_appointment(db, appointment.id)
    if conversation:
        return conversation

    conversation = Conversation(
        appointment_id=appointment.id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
    )
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(
            "Conversation created concurrently, using existing row",
            extra=build_log_context(appointment_id=appointment_id),
        )
        existing = get_conversation_by_appointment(db, appointment_id)
        if existing is None:
            raise
        return existing

    logger.info(
        "Conversation created",
        extra=build_log_context(
            user_id=user.user_id,
            role=user.role.value,
            conversation_id=conversation.id,
            appointment_id=appointment_id,
        ),
    )
    return get_conversation_by_appointment(db, appointment.id)


def list_conversations_for_user(db: Session, user: UserSession) -> list[Conversation]:
    """
    Conversations the caller is a party to, most recent activity first.

    Listing is not gated on appointment status; opening one is.
    """
    column = (
        Conversation.doctor_id if user.role == UserRole.DOCTOR else Conversation.patient_id
    )
    return list(
        db.scalars(
            select(Conversation)
            .options(*_load_options())
            .where(column == user.user_id)
            .order_by(Conversation.last_message_at.desc())
        ).unique()
    )


def to_read(conversation: Conversation) -> ConversationRead:
    appointment = conversation.appointment
    return ConversationRead(
        id=conversation.id,
        appointment_id=conversation.appointment_id,
        doctor=PartyRead(id=conversation.doctor.id, name=conversation.doctor.name),
        patient=PartyRead(id=conversation.patient.id, name=conversation.patient.name),
        appointment=AppointmentSummary(
            id=appointment.id,
            appointment_date=appointment.appointment_date,
            time_slot=appointment.time_slot,
            status=appointment.status,
        )
        if appointment
        else None,
        last_message=conversation.last_message,
        last_message_at=conversation.last_message_at,
        unread_count=UnreadCount(
            doctor=conversation.unread_doctor,
            patient=conversation.unread_patient,
        ),
        created_at=conversation.created_at,
    )

