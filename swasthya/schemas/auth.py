"""Authentication-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator

from swasthya.db.enums import UserRole


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    role: UserRole


class UserSession(BaseModel):
    """
    Identity of the caller for authenticated requests and websocket connections.

    Returned by the get_current_session dependency; the access gate only
    needs user_id and role.
    """
    user_id: UUID
    role: UserRole
    name: str
    email: str
    is_verified: bool = False


class RegisterRequest(BaseModel):
    """Registration payload. Doctor-only fields are required for doctors."""
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole
    phone: str | None = Field(None, max_length=30)
    city: str | None = Field(None, max_length=100)

    # Patient profile
    age: int | None = Field(None, ge=0, le=130)
    gender: str | None = Field(None, max_length=20)

    # Doctor profile
    specialization: str | None = Field(None, max_length=120)
    qualification: str | None = Field(None, max_length=200)
    registration_number: str | None = Field(None, pattern=r"^[A-Za-z0-9]{6,20}$")
    consultation_fee: Decimal | None = Field(None, ge=0)
    experience_years: int | None = Field(None, ge=0, le=80)

    @model_validator(mode="after")
    def _require_doctor_fields(self):
        if self.role == UserRole.DOCTOR:
            missing = [
                name
                for name in ("specialization", "qualification", "registration_number")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"Doctors must provide: {', '.join(missing)}")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: UserRole


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class UserRead(BaseModel):
    """Public profile of a patient or doctor."""
    model_config = {"from_attributes": True}

    id: UUID
    role: UserRole
    name: str
    email: str
    phone: str | None = None
    city: str | None = None
    is_verified: bool
    created_at: datetime

    age: int | None = None
    gender: str | None = None

    specialization: str | None = None
    qualification: str | None = None
    registration_number: str | None = None
    consultation_fee: Decimal | None = None
    experience_years: int | None = None


class LoginResponse(BaseModel):
    token: str
    token_type: Literal["bearer"] = "bearer"
    user: UserRead


class VerifyEmailResponse(BaseModel):
    verified: bool


class DetailResponse(BaseModel):
    message: str
