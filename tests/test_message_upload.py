"""Tests for attachment upload, storage cleanup and gated download."""

import io
import os

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from swasthya.db.enums import AppointmentStatus
from swasthya.db.models import Conversation, Message
from swasthya.services import attachment_service, message_service

from tests.conftest import auth_headers, session_for

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256
PDF_BYTES = b"%PDF-1.4\n" + b"0" * 512


def _stored_files(test_settings) -> list[str]:
    directory = attachment_service.storage_dir(test_settings)
    if not os.path.isdir(directory):
        return []
    return os.listdir(directory)


def _message_count(db: Session) -> int:
    return db.scalar(select(func.count()).select_from(Message))


async def _upload(client, conversation_id, filename, content, content_type, **data):
    form = {"conversationId": str(conversation_id)}
    form.update(data)
    return await client.post(
        "/api/messages/upload",
        data=form,
        files={"attachment": (filename, content, content_type)},
    )


# =============================================================================
# Successful uploads
# =============================================================================

@pytest.mark.asyncio
async def test_upload_png_creates_image_message(
    patient_client: AsyncClient, db: Session, conversation, test_settings
):
    response = await _upload(patient_client, conversation.id, "scan.png", PNG_BYTES, "image/png")

    assert response.status_code == 201
    data = response.json()
    assert data["messageType"] == "image"
    assert data["messageText"] == ""
    assert data["attachmentUrl"].startswith("/api/messages/attachments/attachment-")
    assert data["attachmentUrl"].endswith(".png")

    stored = _stored_files(test_settings)
    assert len(stored) == 1
    assert data["attachmentUrl"].endswith(stored[0])

    db.expire_all()
    refreshed = db.get(Conversation, conversation.id)
    assert refreshed.last_message == "Sent a image"
    assert refreshed.unread_doctor == 1


@pytest.mark.asyncio
async def test_upload_pdf_with_caption(
    doctor_client: AsyncClient, db: Session, conversation
):
    response = await _upload(
        doctor_client,
        conversation.id,
        "report.pdf",
        PDF_BYTES,
        "application/pdf",
        messageText="Lab report attached",
    )

    assert response.status_code == 201
    assert response.json()["messageType"] == "pdf"
    assert response.json()["messageText"] == "Lab report attached"

    db.expire_all()
    refreshed = db.get(Conversation, conversation.id)
    assert refreshed.last_message == "Lab report attached"
    assert refreshed.unread_patient == 1


@pytest.mark.asyncio
async def test_whitespace_caption_falls_back_to_type_preview(
    patient_client: AsyncClient, db: Session, conversation
):
    response = await _upload(
        patient_client, conversation.id, "scan.png", PNG_BYTES, "image/png", messageText="   "
    )

    assert response.status_code == 201
    assert response.json()["messageText"] == ""

    db.expire_all()
    assert db.get(Conversation, conversation.id).last_message == "Sent a image"


# =============================================================================
# Rejections leave nothing behind
# =============================================================================

@pytest.mark.asyncio
async def test_oversized_upload_rejected_before_storage(
    patient_client: AsyncClient, db: Session, conversation, test_settings
):
    content = b"\x00" * (6 * 1024 * 1024)

    response = await _upload(patient_client, conversation.id, "big.png", content, "image/png")

    assert response.status_code == 400
    assert "5 MB" in response.json()["detail"]
    assert _message_count(db) == 0
    assert _stored_files(test_settings) == []


@pytest.mark.asyncio
async def test_upload_just_over_limit_is_measured(
    patient_client: AsyncClient, db: Session, conversation, test_settings
):
    content = b"\x00" * (5 * 1024 * 1024 + 1)

    response = await _upload(patient_client, conversation.id, "big.png", content, "image/png")

    assert response.status_code == 400
    assert response.json()["detail"] == "File size exceeds 5 MB limit"
    assert _stored_files(test_settings) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "filename,content_type",
    [
        ("notes.txt", "text/plain"),
        ("photo.gif", "image/gif"),
        ("scan.pdf", "image/png"),
    ],
)
async def test_disallowed_types_rejected(
    patient_client: AsyncClient, db: Session, conversation, test_settings, filename, content_type
):
    response = await _upload(patient_client, conversation.id, filename, PNG_BYTES, content_type)

    assert response.status_code == 400
    assert _message_count(db) == 0
    assert _stored_files(test_settings) == []


@pytest.mark.asyncio
async def test_upload_blocked_for_unconfirmed_appointment(
    patient_client: AsyncClient,
    db: Session,
    make_appointment,
    make_conversation,
    patient,
    doctor,
    test_settings,
):
    conversation = make_conversation(
        make_appointment(patient, doctor, AppointmentStatus.REJECTED)
    )

    response = await _upload(patient_client, conversation.id, "scan.png", PNG_BYTES, "image/png")

    assert response.status_code == 403
    assert "rejected" in response.json()["detail"]
    assert _stored_files(test_settings) == []


@pytest.mark.asyncio
async def test_storage_failure_returns_503(
    patient_client: AsyncClient, db: Session, conversation, monkeypatch
):
    def broken_store(config, filename, file):
        raise attachment_service.AttachmentStorageError("Failed to store attachment")

    monkeypatch.setattr(attachment_service, "store_file", broken_store)

    response = await _upload(patient_client, conversation.id, "scan.png", PNG_BYTES, "image/png")

    assert response.status_code == 503
    assert _message_count(db) == 0


def test_failed_database_write_removes_stored_file(
    db: Session, conversation, patient, test_settings, monkeypatch
):
    def failing_send(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(message_service, "send_message", failing_send)

    with pytest.raises(RuntimeError):
        message_service.upload_attachment(
            db,
            test_settings,
            conversation.id,
            session_for(patient),
            filename="scan.png",
            content_type="image/png",
            file=io.BytesIO(PNG_BYTES),
            file_size=len(PNG_BYTES),
        )

    assert _stored_files(test_settings) == []
    assert _message_count(db) == 0


# =============================================================================
# Download
# =============================================================================

@pytest.mark.asyncio
async def test_party_can_download_attachment(
    client: AsyncClient, conversation, patient, doctor
):
    uploaded = await client.post(
        "/api/messages/upload",
        data={"conversationId": str(conversation.id)},
        files={"attachment": ("report.pdf", PDF_BYTES, "application/pdf")},
        headers=auth_headers(patient),
    )
    url = uploaded.json()["attachmentUrl"]

    response = await client.get(url, headers=auth_headers(doctor))

    assert response.status_code == 200
    assert response.content == PDF_BYTES


@pytest.mark.asyncio
async def test_outsider_cannot_download_attachment(
    client: AsyncClient, conversation, patient, make_patient
):
    uploaded = await client.post(
        "/api/messages/upload",
        data={"conversationId": str(conversation.id)},
        files={"attachment": ("scan.png", PNG_BYTES, "image/png")},
        headers=auth_headers(patient),
    )

    response = await client.get(
        uploaded.json()["attachmentUrl"], headers=auth_headers(make_patient())
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_attachment_is_404(patient_client: AsyncClient):
    response = await patient_client.get("/api/messages/attachments/attachment-1-1.png")

    assert response.status_code == 404
