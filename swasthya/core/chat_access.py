"""Chat access control - the one gate for conversation and message operations.

A conversation is usable only when:
- the caller is the doctor or the patient on the underlying appointment
- the appointment's *current* status is confirmed

Both the REST routers and the websocket relay call into this module, and the
check runs on every operation (no caching), so a status change on the
appointment locks or unlocks the chat immediately.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from swasthya.db.enums import CHAT_ENABLED_STATUS, UserRole
from swasthya.db.models import Appointment, Conversation
from swasthya.schemas.auth import UserSession


class ChatAccessError(Exception):
    """Base exception for chat access failures."""

    status_code = 403
    code = "forbidden"


class AppointmentNotFoundError(ChatAccessError):
    """Appointment not found."""

    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Appointment not found"):
        super().__init__(message)


class ConversationNotFoundError(ChatAccessError):
    """Conversation not found."""

    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Conversation not found"):
        super().__init__(message)


class NotConversationParticipantError(ChatAccessError):
    """Caller is neither the doctor nor the patient."""

    def __init__(self, message: str = "Not authorized to access this conversation"):
        super().__init__(message)


class ChatNotAvailableError(ChatAccessError):
    """Appointment exists and caller is a party, but it is not confirmed."""

    code = "chat_not_available"

    def __init__(self, status: str | None):
        self.status = status or "unknown"
        super().__init__(
            "Chat is only available for confirmed appointments. "
            f"Current status: {self.status}."
        )


def _is_party(doctor_id: UUID, patient_id: UUID, user: UserSession) -> bool:
    if user.role == UserRole.DOCTOR:
        return doctor_id == user.user_id
    return patient_id == user.user_id


def check_chat_access(appointment: Appointment, user: UserSession) -> None:
    """
    Check a loaded appointment against the caller.

    Raises:
        NotConversationParticipantError: caller is not on the appointment
        ChatNotAvailableError: appointment is not confirmed
    """
    if not _is_party(appointment.doctor_id, appointment.patient_id, user):
        raise NotConversationParticipantError()
    if appointment.status != CHAT_ENABLED_STATUS.value:
        raise ChatNotAvailableError(appointment.status)


def get_appointment_for_chat(
    db: Session, appointment_id: UUID, user: UserSession
) -> Appointment:
    """Load an appointment and verify the caller may chat on it."""
    appointment = db.get(Appointment, appointment_id, populate_existing=True)
    if not appointment:
        raise AppointmentNotFoundError()
    check_chat_access(appointment, user)
    return appointment


def get_conversation_for_chat(
    db: Session, conversation_id: UUID, user: UserSession
) -> Conversation:
    """
    Load a conversation and verify the caller may use it.

    Party membership is checked on the conversation's own doctor/patient
    columns; the status is read fresh from the appointment.
    """
    conversation = db.get(Conversation, conversation_id, populate_existing=True)
    if not conversation:
        raise ConversationNotFoundError()

    if not _is_party(conversation.doctor_id, conversation.patient_id, user):
        raise NotConversationParticipantError()

    appointment = db.get(Appointment, conversation.appointment_id, populate_existing=True)
    if appointment is None:
        raise ChatNotAvailableError(None)
    check_chat_access(appointment, user)
    return conversation
