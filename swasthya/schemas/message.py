"""Pydantic schemas for conversations and messages."""

from datetime import date, datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from swasthya.db.base import as_utc
from swasthya.db.enums import AppointmentStatus, MessageType, UserRole


class ChatModel(BaseModel):
    """Chat payloads go out with camelCase keys; field names stay snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PartyRead(ChatModel):
    id: UUID
    name: str


class AppointmentSummary(ChatModel):
    """Appointment fields shown next to a conversation."""
    id: UUID
    appointment_date: date
    time_slot: str
    status: AppointmentStatus


class UnreadCount(ChatModel):
    doctor: int = 0
    patient: int = 0


class ConversationRead(ChatModel):
    id: UUID
    appointment_id: UUID
    doctor: PartyRead
    patient: PartyRead
    appointment: AppointmentSummary | None = None
    last_message: str
    last_message_at: datetime
    unread_count: UnreadCount
    created_at: datetime

    @field_validator("last_message_at", "created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class MessageRead(ChatModel):
    """A persisted message, exactly as stored."""
    model_config = {"from_attributes": True}

    id: UUID
    conversation_id: UUID
    sender_role: UserRole
    sender_id: UUID
    message_text: str
    attachment_url: str | None = None
    message_type: MessageType
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime

    @field_validator("read_at", "created_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class MessageSend(BaseModel):
    """Text message from REST or the websocket sendMessage event."""
    conversation_id: UUID = Field(
        validation_alias=AliasChoices("conversation_id", "conversationId")
    )
    message_text: str = Field(
        "",
        max_length=5000,
        validation_alias=AliasChoices("message_text", "messageText"),
    )


class ConversationRef(BaseModel):
    """Payload of websocket events that only name a conversation."""
    conversation_id: UUID = Field(
        validation_alias=AliasChoices("conversation_id", "conversationId")
    )


class MarkReadResponse(ChatModel):
    conversation_id: UUID
    marked: int
    unread_count: UnreadCount
