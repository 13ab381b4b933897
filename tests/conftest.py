"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema created and dropped around each test
- Patient/doctor/appointment/conversation factories
- JWT token minting for authenticated tests
- HTTPX AsyncClients (anonymous, patient, doctor) and a Starlette
  TestClient for websocket tests
"""
import os
import uuid
from datetime import date, timedelta
from typing import AsyncGenerator, Generator

# Must be set before the app (and its engine/settings) is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ["JWT_SECRET_PREVIOUS"] = ""
os.environ["RESEND_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from swasthya.core.config import Settings, get_settings
from swasthya.core.security import create_access_token, hash_password
from swasthya.core.websocket import manager
from swasthya.db.base import Base
from swasthya.db.enums import AppointmentStatus
from swasthya.db.models import Appointment, Conversation, Doctor, Patient
from swasthya.db.session import SessionLocal, engine
from swasthya.main import app
from swasthya.schemas.auth import UserSession

TEST_PASSWORD = "correct-horse-battery"
PASSWORD_HASH = hash_password(TEST_PASSWORD)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def schema() -> Generator[None, None, None]:
    """Fresh schema per test on the shared in-memory database."""
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(schema) -> Generator[Session, None, None]:
    """
    Session for arranging data and asserting on it.

    The app uses its own sessions, so call db.expire_all() before reading
    rows the app may have changed.
    """
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def test_settings(tmp_path) -> Settings:
    """Settings with uploads in a temp dir and outbound email disabled."""
    return get_settings().model_copy(
        update={
            "UPLOAD_DIR": str(tmp_path / "uploads"),
            "RESEND_API_KEY": "",
        }
    )


@pytest.fixture(autouse=True)
def override_settings(test_settings: Settings) -> Generator[None, None, None]:
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_connection_manager() -> Generator[None, None, None]:
    yield
    manager._connections.clear()
    manager._rooms.clear()
    manager._socket_rooms.clear()


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture(scope="function")
def make_patient(db: Session):
    def _make(**overrides) -> Patient:
        data = {
            "name": "Asha Patil",
            "email": f"patient-{uuid.uuid4().hex[:8]}@test.com",
            "password_hash": PASSWORD_HASH,
            "city": "Pune",
            "age": 34,
            "is_verified": True,
        }
        data.update(overrides)
        patient = Patient(**data)
        db.add(patient)
        db.commit()
        return patient
    return _make


@pytest.fixture(scope="function")
def make_doctor(db: Session):
    def _make(**overrides) -> Doctor:
        data = {
            "name": "Rohan Mehta",
            "email": f"doctor-{uuid.uuid4().hex[:8]}@test.com",
            "password_hash": PASSWORD_HASH,
            "city": "Pune",
            "is_verified": True,
            "specialization": "General Medicine",
            "qualification": "MBBS",
            "registration_number": "MH123456",
        }
        data.update(overrides)
        doctor = Doctor(**data)
        db.add(doctor)
        db.commit()
        return doctor
    return _make


@pytest.fixture(scope="function")
def make_appointment(db: Session):
    def _make(
        patient: Patient,
        doctor: Doctor,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        **overrides,
    ) -> Appointment:
        data = {
            "patient_id": patient.id,
            "doctor_id": doctor.id,
            "appointment_date": date.today() + timedelta(days=1),
            "time_slot": "10:30",
            "status": status.value,
        }
        data.update(overrides)
        appointment = Appointment(**data)
        db.add(appointment)
        db.commit()
        return appointment
    return _make


@pytest.fixture(scope="function")
def make_conversation(db: Session):
    def _make(appointment: Appointment) -> Conversation:
        conversation = Conversation(
            appointment_id=appointment.id,
            doctor_id=appointment.doctor_id,
            patient_id=appointment.patient_id,
        )
        db.add(conversation)
        db.commit()
        return conversation
    return _make


@pytest.fixture(scope="function")
def patient(make_patient) -> Patient:
    return make_patient()


@pytest.fixture(scope="function")
def doctor(make_doctor) -> Doctor:
    return make_doctor()


@pytest.fixture(scope="function")
def appointment(make_appointment, patient, doctor) -> Appointment:
    """A confirmed appointment between `patient` and `doctor`."""
    return make_appointment(patient, doctor)


@pytest.fixture(scope="function")
def conversation(make_conversation, appointment) -> Conversation:
    return make_conversation(appointment)


# =============================================================================
# Auth Fixtures
# =============================================================================

def token_for(user: Patient | Doctor) -> str:
    return create_access_token(user.id, user.role.value)


def auth_headers(user: Patient | Doctor) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


def session_for(user: Patient | Doctor) -> UserSession:
    """Caller identity as the dependencies would build it."""
    return UserSession(
        user_id=user.id,
        role=user.role,
        name=user.name,
        email=user.email,
        is_verified=user.is_verified,
    )


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


@pytest.fixture(scope="function")
async def patient_client(patient: Patient) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=auth_headers(patient),
    ) as c:
        yield c


@pytest.fixture(scope="function")
async def doctor_client(doctor: Doctor) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=auth_headers(doctor),
    ) as c:
        yield c


@pytest.fixture(scope="function")
def ws_client() -> Generator[TestClient, None, None]:
    """One TestClient (one event loop) so several sockets can talk to each other."""
    with TestClient(app) as c:
        yield c
