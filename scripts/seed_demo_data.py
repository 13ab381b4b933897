"""
Seed script to create a verified doctor, a verified patient and one
confirmed appointment between them, so the chat can be tried locally.
Run with: python -m scripts.seed_demo_data

Idempotent: existing demo accounts are reused.
"""

import os
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from swasthya.core.security import hash_password
from swasthya.db.enums import AppointmentStatus
from swasthya.db.models import Appointment, Doctor, Patient
from swasthya.db.session import SessionLocal

DEMO_PASSWORD = os.getenv("SEED_PASSWORD", "demo-password-123")
DOCTOR_EMAIL = os.getenv("SEED_DOCTOR_EMAIL", "dr.mehta@swasthya.test")
PATIENT_EMAIL = os.getenv("SEED_PATIENT_EMAIL", "asha.patil@swasthya.test")


def get_or_create_doctor(db) -> Doctor:
    doctor = db.scalar(select(Doctor).where(Doctor.email == DOCTOR_EMAIL))
    if doctor:
        return doctor
    doctor = Doctor(
        name="Rohan Mehta",
        email=DOCTOR_EMAIL,
        password_hash=hash_password(DEMO_PASSWORD),
        city="Pune",
        is_verified=True,
        specialization="General Medicine",
        qualification="MBBS, MD",
        registration_number="MH123456",
        consultation_fee=Decimal("500.00"),
        experience_years=8,
    )
    db.add(doctor)
    db.flush()
    return doctor


def get_or_create_patient(db) -> Patient:
    patient = db.scalar(select(Patient).where(Patient.email == PATIENT_EMAIL))
    if patient:
        return patient
    patient = Patient(
        name="Asha Patil",
        email=PATIENT_EMAIL,
        password_hash=hash_password(DEMO_PASSWORD),
        city="Pune",
        age=34,
        gender="female",
        is_verified=True,
    )
    db.add(patient)
    db.flush()
    return patient


def main():
    """Main entry point."""
    print("Seeding demo data...")

    db = SessionLocal()

    try:
        doctor = get_or_create_doctor(db)
        patient = get_or_create_patient(db)

        appointment = db.scalar(
            select(Appointment).where(
                Appointment.doctor_id == doctor.id,
                Appointment.patient_id == patient.id,
            )
        )
        if not appointment:
            appointment = Appointment(
                patient_id=patient.id,
                doctor_id=doctor.id,
                appointment_date=date.today() + timedelta(days=1),
                time_slot="10:30",
                symptoms="Recurring headaches for two weeks",
                status=AppointmentStatus.CONFIRMED.value,
            )
            db.add(appointment)

        db.commit()

        print("\nDemo data seeded successfully!")
        print(f"  - doctor:  {doctor.email} ({doctor.id})")
        print(f"  - patient: {patient.email} ({patient.id})")
        print(f"  - confirmed appointment: {appointment.id}")
        print(f"  - password for both: {DEMO_PASSWORD}")

    except Exception as e:
        print(f"ERROR: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
