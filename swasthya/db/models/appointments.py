"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swasthya.db.base import Base, utcnow
from swasthya.db.enums import AppointmentStatus, DEFAULT_APPOINTMENT_STATUS

if TYPE_CHECKING:
    from swasthya.db.models import Doctor, Patient


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in AppointmentStatus)


class Appointment(Base):
    """
    A requested consultation between one patient and one doctor.

    The time slot is an "HH:MM" string validated at booking time only;
    status changes never re-validate it.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_patient", "patient_id", "created_at"),
        Index("idx_appointments_doctor", "doctor_id", "created_at"),
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_appointment_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id"), nullable=False
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("doctors.id"), nullable=False
    )

    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)
    symptoms: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_APPOINTMENT_STATUS.value, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    patient: Mapped["Patient"] = relationship()
    doctor: Mapped["Doctor"] = relationship()
