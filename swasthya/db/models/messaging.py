"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swasthya.db.base import Base, utcnow
from swasthya.db.enums import MessageType, UserRole

if TYPE_CHECKING:
    from swasthya.db.models import Appointment, Doctor, Patient


class Conversation(Base):
    """
    Chat thread for exactly one appointment.

    doctor_id/patient_id duplicate the appointment's parties so the
    participant check needs no join. Whether the chat is usable is decided
    at access time from the appointment's current status, never stored here.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("appointment_id", name="uq_conversation_appointment"),
        Index("idx_conversations_doctor", "doctor_id", "last_message_at"),
        Index("idx_conversations_patient", "patient_id", "last_message_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("doctors.id"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id"), nullable=False
    )
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("appointments.id"), nullable=False
    )

    # Preview
    last_message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    # Per-role unread counters
    unread_doctor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unread_patient: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Highest Message.seq handed out in this thread
    message_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    doctor: Mapped["Doctor"] = relationship()
    patient: Mapped["Patient"] = relationship()
    appointment: Mapped["Appointment"] = relationship()

    def party_id(self, role: UserRole | str) -> uuid.UUID:
        return self.doctor_id if UserRole(role) == UserRole.DOCTOR else self.patient_id


class Message(Base):
    """
    A single chat entry: text, one attachment, or both.

    Only is_read/read_at change after insert. `seq` numbers messages within
    their conversation in send order; created_at can tie, seq cannot.
    """

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "seq", name="uq_message_conversation_seq"),
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
        Index("idx_messages_sender", "sender_id", "created_at"),
        CheckConstraint(
            "sender_role IN ('doctor', 'patient')", name="ck_message_sender_role"
        ),
        CheckConstraint(
            "message_type IN ('text', 'image', 'pdf')", name="ck_message_type"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id"), nullable=False
    )
    sender_role: Mapped[str] = mapped_column(String(10), nullable=False)
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    message_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    attachment_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    message_type: Mapped[str] = mapped_column(
        String(10), default=MessageType.TEXT.value, nullable=False
    )

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    # Relationships
    conversation: Mapped["Conversation"] = relationship()
