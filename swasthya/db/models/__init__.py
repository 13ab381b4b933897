"""SQLAlchemy ORM models."""

from swasthya.db.models.users import Doctor, Patient, model_for_role
from swasthya.db.models.appointments import Appointment
from swasthya.db.models.messaging import Conversation, Message

__all__ = [
    "Appointment",
    "Conversation",
    "Doctor",
    "Message",
    "Patient",
    "model_for_role",
]
