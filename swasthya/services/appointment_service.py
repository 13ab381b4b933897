"""Appointment service - booking, listing and doctor-driven status changes.

Status changes are what lock and unlock the chat: the access gate reads the
appointment's current status on every chat operation, so nothing here has to
touch conversations when the status moves.
"""

import logging
import re
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session, joinedload

from swasthya.core.structured_logging import build_log_context
from swasthya.db.enums import AppointmentStatus, UserRole
from swasthya.db.models import Appointment, Conversation, Doctor
from swasthya.schemas.appointment import AppointmentCreate, AppointmentRead
from swasthya.schemas.auth import UserSession

logger = logging.getLogger(__name__)

TIME_SLOT_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
EARLIEST_SLOT_HOUR = 10
SLOT_MINUTES = (0, 30)


class AppointmentServiceError(Exception):
    """Base exception for appointment operations."""
    pass


class DoctorNotFoundError(AppointmentServiceError):
    """Booking references an unknown doctor."""
    pass


class InvalidTimeSlotError(AppointmentServiceError):
    """Time slot is not HH:MM on a 30-minute boundary at or after 10:00."""
    pass


class AppointmentNotFoundError(AppointmentServiceError):
    """Appointment not found."""
    pass


class NotAppointmentOwnerError(AppointmentServiceError):
    """Caller is not the doctor (status change) or patient (delete) on it."""
    pass


class AppointmentInUseError(AppointmentServiceError):
    """Appointment already has a conversation and cannot be deleted."""
    pass


def validate_time_slot(value: str) -> str:
    """
    Check an "HH:MM" slot.

    Raises:
        InvalidTimeSlotError: malformed, not on :00/:30, or before 10:00
    """
    match = TIME_SLOT_RE.match(value or "")
    if not match:
        raise InvalidTimeSlotError("Time must be in HH:MM format")
    hour, minute = int(match.group(1)), int(match.group(2))
    if minute not in SLOT_MINUTES:
        raise InvalidTimeSlotError("Time must be on a 30-minute boundary")
    if hour < EARLIEST_SLOT_HOUR:
        raise InvalidTimeSlotError("Appointments start at 10:00")
    return value


def create_appointment(db: Session, patient_id: UUID, data: AppointmentCreate) -> Appointment:
    """Book a pending appointment. The slot is validated here and never again."""
    time_slot = validate_time_slot(data.time_slot)

    if not db.get(Doctor, data.doctor_id):
        raise DoctorNotFoundError("Doctor not found")

    appointment = Appointment(
        patient_id=patient_id,
        doctor_id=data.doctor_id,
        appointment_date=data.appointment_date,
        time_slot=time_slot,
        symptoms=data.symptoms,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    logger.info(
        "Appointment booked",
        extra=build_log_context(user_id=patient_id, role="patient", appointment_id=appointment.id),
    )
    return appointment


def list_appointments_for_user(db: Session, user: UserSession) -> list[Appointment]:
    """Caller's appointments, newest first, with both parties loaded."""
    column = Appointment.doctor_id if user.role == UserRole.DOCTOR else Appointment.patient_id
    return list(
        db.scalars(
            select(Appointment)
            .options(joinedload(Appointment.patient), joinedload(Appointment.doctor))
            .where(column == user.user_id)
            .order_by(Appointment.created_at.desc())
        )
    )


def update_status(
    db: Session,
    appointment_id: UUID,
    doctor_id: UUID,
    status: AppointmentStatus,
    notes: str | None = None,
) -> Appointment:
    """
    Move an appointment to a new status (owning doctor only).

    Any status may follow any other; confirmed opens the chat, every other
    status closes it.
    """
    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise AppointmentNotFoundError("Appointment not found")
    if appointment.doctor_id != doctor_id:
        raise NotAppointmentOwnerError("Not authorized to update this appointment")

    previous = appointment.status
    appointment.status = status.value
    if notes is not None:
        appointment.notes = notes
    db.commit()
    db.refresh(appointment)

    logger.info(
        "Appointment status changed %s -> %s",
        previous,
        appointment.status,
        extra=build_log_context(user_id=doctor_id, role="doctor", appointment_id=appointment.id),
    )
    return appointment


def delete_appointment(db: Session, appointment_id: UUID, patient_id: UUID) -> None:
    """
    Delete an appointment (owning patient only).

    Conversations are never deleted, so an appointment that already has one
    is kept.
    """
    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise AppointmentNotFoundError("Appointment not found")
    if appointment.patient_id != patient_id:
        raise NotAppointmentOwnerError("Not authorized to delete this appointment")

    has_conversation = db.scalar(
        select(exists().where(Conversation.appointment_id == appointment_id))
    )
    if has_conversation:
        raise AppointmentInUseError("Appointment has a conversation and cannot be deleted")

    db.delete(appointment)
    db.commit()


def to_read(appointment: Appointment) -> AppointmentRead:
    return AppointmentRead(
        id=appointment.id,
        patient_id=appointment.patient_id,
        patient_name=appointment.patient.name if appointment.patient else None,
        doctor_id=appointment.doctor_id,
        doctor_name=appointment.doctor.name if appointment.doctor else None,
        doctor_specialization=appointment.doctor.specialization if appointment.doctor else None,
        appointment_date=appointment.appointment_date,
        time_slot=appointment.time_slot,
        symptoms=appointment.symptoms,
        notes=appointment.notes,
        status=appointment.status,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )
