"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from swasthya.db.base import Base, utcnow
from swasthya.db.enums import UserRole


class AccountMixin:
    """
    Columns shared by both account kinds.

    Verification state:
    - is_verified flips once the emailed link is used
    - verification_token/verification_expires_at are cleared on success
    """

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    verification_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )


class Patient(AccountMixin, Base):
    """A patient account. Books appointments and chats with doctors."""

    __tablename__ = "patients"

    role = UserRole.PATIENT

    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(20), nullable=True)


class Doctor(AccountMixin, Base):
    """A doctor account with professional profile fields."""

    __tablename__ = "doctors"

    role = UserRole.DOCTOR

    specialization: Mapped[str] = mapped_column(String(120), nullable=False)
    qualification: Mapped[str] = mapped_column(String(200), nullable=False)
    registration_number: Mapped[str] = mapped_column(String(20), nullable=False)
    consultation_fee: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    experience_years: Mapped[int | None] = mapped_column(Integer, nullable=True)


def model_for_role(role: UserRole | str) -> type[Patient] | type[Doctor]:
    """Return the account model backing a role."""
    return Doctor if UserRole(role) == UserRole.DOCTOR else Patient
