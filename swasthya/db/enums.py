"""Enum definitions for application constants."""

from enum import Enum


class UserRole(str, Enum):
    """The two account kinds. Stored in tokens and on messages."""

    PATIENT = "patient"
    DOCTOR = "doctor"


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: pending → confirmed → completed
              ↘ rejected
              ↘ cancelled
    """

    PENDING = "pending"  # Awaiting doctor approval
    CONFIRMED = "confirmed"  # Approved, chat enabled
    REJECTED = "rejected"  # Declined by doctor
    COMPLETED = "completed"  # Consultation took place
    CANCELLED = "cancelled"  # Cancelled by either party


class MessageType(str, Enum):
    """Coarse message classification (attachment MIME types collapse to image/pdf)."""

    TEXT = "text"
    IMAGE = "image"
    PDF = "pdf"


DEFAULT_APPOINTMENT_STATUS = AppointmentStatus.PENDING

# Only confirmed appointments open the chat
CHAT_ENABLED_STATUS = AppointmentStatus.CONFIRMED
