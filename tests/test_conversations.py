"""Tests for conversation get-or-create, listing and the confirm-to-chat flow."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from swasthya.db.base import utcnow
from swasthya.db.enums import AppointmentStatus
from swasthya.db.models import Conversation, Message
from swasthya.routers import appointments as appointments_router
from swasthya.services import conversation_service

from tests.conftest import auth_headers, session_for


# =============================================================================
# Get or create
# =============================================================================

@pytest.mark.asyncio
async def test_first_access_creates_conversation(
    patient_client: AsyncClient, db: Session, appointment, patient, doctor
):
    response = await patient_client.get(f"/api/messages/conversation/{appointment.id}")

    assert response.status_code == 200
    data = response.json()
    assert data["appointmentId"] == str(appointment.id)
    assert data["doctor"] == {"id": str(doctor.id), "name": doctor.name}
    assert data["patient"] == {"id": str(patient.id), "name": patient.name}
    assert data["appointment"]["status"] == "confirmed"
    assert data["lastMessage"] == ""
    assert data["unreadCount"] == {"doctor": 0, "patient": 0}


@pytest.mark.asyncio
async def test_get_or_create_is_idempotent(
    client: AsyncClient, db: Session, appointment, patient, doctor
):
    first = await client.get(
        f"/api/messages/conversation/{appointment.id}", headers=auth_headers(patient)
    )
    second = await client.get(
        f"/api/messages/conversation/{appointment.id}", headers=auth_headers(doctor)
    )

    assert first.json()["id"] == second.json()["id"]
    assert db.scalar(select(func.count()).select_from(Conversation)) == 1


def test_lost_insert_race_returns_existing_row(db: Session, appointment, patient, monkeypatch):
    """The loser of a concurrent first access reads the winner's conversation."""
    winner = Conversation(
        appointment_id=appointment.id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
    )
    db.add(winner)
    db.commit()

    original = conversation_service.get_conversation_by_appointment
    calls = []

    def not_seen_yet(session, appointment_id):
        calls.append(appointment_id)
        if len(calls) == 1:
            return None
        return original(session, appointment_id)

    monkeypatch.setattr(conversation_service, "get_conversation_by_appointment", not_seen_yet)

    conversation = conversation_service.get_or_create_conversation(
        db, appointment.id, session_for(patient)
    )

    assert conversation.id == winner.id
    assert db.scalar(select(func.count()).select_from(Conversation)) == 1


@pytest.mark.asyncio
async def test_pending_appointment_has_no_chat(
    patient_client: AsyncClient, db: Session, make_appointment, patient, doctor
):
    appointment = make_appointment(patient, doctor, AppointmentStatus.PENDING)

    response = await patient_client.get(f"/api/messages/conversation/{appointment.id}")

    assert response.status_code == 403
    assert "pending" in response.json()["detail"]
    assert db.scalar(select(func.count()).select_from(Conversation)) == 0


@pytest.mark.asyncio
async def test_outsider_cannot_open_conversation(
    client: AsyncClient, appointment, make_patient
):
    response = await client.get(
        f"/api/messages/conversation/{appointment.id}",
        headers=auth_headers(make_patient()),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_conversation_requires_authentication(client: AsyncClient, appointment):
    response = await client.get(f"/api/messages/conversation/{appointment.id}")

    assert response.status_code == 401


# =============================================================================
# Listing
# =============================================================================

@pytest.mark.asyncio
async def test_list_conversations_most_recent_first(
    client: AsyncClient,
    db: Session,
    make_appointment,
    make_conversation,
    make_patient,
    patient,
    doctor,
):
    older = make_conversation(make_appointment(patient, doctor))
    newer = make_conversation(make_appointment(patient, doctor, time_slot="12:00"))
    make_conversation(make_appointment(make_patient(), doctor))

    older.last_message_at = utcnow() - timedelta(hours=2)
    newer.last_message_at = utcnow() - timedelta(minutes=5)
    db.commit()

    response = await client.get("/api/messages/conversations", headers=auth_headers(patient))

    assert response.status_code == 200
    assert [c["id"] for c in response.json()] == [str(newer.id), str(older.id)]

    response = await client.get("/api/messages/conversations", headers=auth_headers(doctor))
    assert len(response.json()) == 3


@pytest.mark.asyncio
async def test_listing_includes_locked_conversations(
    patient_client: AsyncClient, db: Session, appointment, conversation
):
    appointment.status = AppointmentStatus.COMPLETED.value
    db.commit()

    response = await patient_client.get("/api/messages/conversations")

    assert [c["id"] for c in response.json()] == [str(conversation.id)]
    assert response.json()[0]["appointment"]["status"] == "completed"


# =============================================================================
# End to end
# =============================================================================

@pytest.mark.asyncio
async def test_confirm_then_chat_flow(
    client: AsyncClient, db: Session, make_appointment, patient, doctor, monkeypatch
):
    """Pending blocks chat; once the doctor confirms, both sides can talk."""
    async def no_push(user_id, notification):
        return None

    monkeypatch.setattr(appointments_router, "push_notification", no_push)

    appointment = make_appointment(patient, doctor, AppointmentStatus.PENDING)
    patient_auth = auth_headers(patient)
    doctor_auth = auth_headers(doctor)

    blocked = await client.get(
        f"/api/messages/conversation/{appointment.id}", headers=patient_auth
    )
    assert blocked.status_code == 403

    confirmed = await client.put(
        f"/api/appointments/{appointment.id}",
        json={"status": "confirmed"},
        headers=doctor_auth,
    )
    assert confirmed.status_code == 200

    opened = await client.get(
        f"/api/messages/conversation/{appointment.id}", headers=patient_auth
    )
    assert opened.status_code == 200
    conversation_id = opened.json()["id"]

    sent = await client.post(
        "/api/messages/send",
        json={"conversationId": conversation_id, "messageText": "Hello"},
        headers=patient_auth,
    )
    assert sent.status_code == 201
    assert sent.json()["isRead"] is False

    listing = await client.get("/api/messages/conversations", headers=doctor_auth)
    assert listing.json()[0]["unreadCount"] == {"doctor": 1, "patient": 0}
    assert listing.json()[0]["lastMessage"] == "Hello"

    history = await client.get(f"/api/messages/{conversation_id}", headers=doctor_auth)
    assert history.status_code == 200
    assert [m["messageText"] for m in history.json()] == ["Hello"]
    assert history.json()[0]["isRead"] is True

    listing = await client.get("/api/messages/conversations", headers=doctor_auth)
    assert listing.json()[0]["unreadCount"] == {"doctor": 0, "patient": 0}

    db.expire_all()
    message = db.scalar(select(Message))
    assert message.is_read is True
    assert message.read_at is not None
