"""Pydantic schemas for appointments."""

from datetime import date, datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from swasthya.db.enums import AppointmentStatus


class AppointmentCreate(BaseModel):
    """Booking request from a patient. Accepts `date`/`time` as sent by the web client."""
    doctor_id: UUID = Field(validation_alias=AliasChoices("doctor_id", "doctorId"))
    appointment_date: date = Field(validation_alias=AliasChoices("date", "appointment_date"))
    time_slot: str = Field(validation_alias=AliasChoices("time", "time_slot"), max_length=5)
    symptoms: str | None = Field(None, max_length=2000)


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    notes: str | None = Field(None, max_length=2000)


class AppointmentRead(BaseModel):
    """Appointment with both party names for list views."""
    id: UUID
    patient_id: UUID
    patient_name: str | None = None
    doctor_id: UUID
    doctor_name: str | None = None
    doctor_specialization: str | None = None
    appointment_date: date
    time_slot: str
    symptoms: str | None = None
    notes: str | None = None
    status: AppointmentStatus
    created_at: datetime
    updated_at: datetime


class AppointmentDeleteResponse(BaseModel):
    deleted: bool
