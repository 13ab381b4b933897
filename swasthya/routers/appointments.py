"""Appointment endpoints: book, list, change status, delete."""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from swasthya.core.config import Settings, get_settings
from swasthya.core.deps import get_current_session, get_db, require_role
from swasthya.db.enums import UserRole
from swasthya.routers.websocket import push_notification
from swasthya.schemas.appointment import (
    AppointmentCreate,
    AppointmentDeleteResponse,
    AppointmentRead,
    AppointmentStatusUpdate,
)
from swasthya.schemas.auth import UserSession
from swasthya.services import appointment_service, email_service

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", response_model=AppointmentRead, status_code=201)
def create_appointment(
    body: AppointmentCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_role(UserRole.PATIENT)),
):
    """Book a pending appointment with a doctor (patients only)."""
    try:
        appointment = appointment_service.create_appointment(db, session.user_id, body)
    except appointment_service.InvalidTimeSlotError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except appointment_service.DoctorNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return appointment_service.to_read(appointment)


@router.get("/my", response_model=list[AppointmentRead])
def list_my_appointments(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    appointments = appointment_service.list_appointments_for_user(db, session)
    return [appointment_service.to_read(a) for a in appointments]


@router.put("/{appointment_id}", response_model=AppointmentRead)
async def update_appointment_status(
    appointment_id: UUID,
    body: AppointmentStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_role(UserRole.DOCTOR)),
    config: Settings = Depends(get_settings),
):
    """
    Change an appointment's status (owning doctor only).

    Confirming opens the chat for both parties; any other status closes it.
    The patient gets a live notification and a best-effort email.
    """
    try:
        appointment = appointment_service.update_status(
            db, appointment_id, session.user_id, body.status, body.notes
        )
    except appointment_service.AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except appointment_service.NotAppointmentOwnerError as e:
        raise HTTPException(status_code=403, detail=str(e))

    result = appointment_service.to_read(appointment)

    await push_notification(
        appointment.patient_id,
        {
            "type": "appointment_status",
            "appointmentId": str(appointment.id),
            "status": appointment.status,
            "message": f"Your appointment with Dr. {session.name} is now {appointment.status}.",
        },
    )
    background_tasks.add_task(
        email_service.send_appointment_status_email,
        config,
        patient_name=appointment.patient.name,
        patient_email=appointment.patient.email,
        doctor_name=session.name,
        appointment_date=appointment.appointment_date,
        time_slot=appointment.time_slot,
        status=appointment.status,
    )
    return result


@router.delete("/{appointment_id}", response_model=AppointmentDeleteResponse)
def delete_appointment(
    appointment_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_role(UserRole.PATIENT)),
):
    """Delete an appointment (owning patient only). 409 once it has a conversation."""
    try:
        appointment_service.delete_appointment(db, appointment_id, session.user_id)
    except appointment_service.AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except appointment_service.NotAppointmentOwnerError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except appointment_service.AppointmentInUseError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return AppointmentDeleteResponse(deleted=True)
