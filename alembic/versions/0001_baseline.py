"""Baseline migration - accounts, appointments and chat tables

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates patients, doctors, appointments, conversations and messages.
One conversation per appointment is enforced by uq_conversation_appointment.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _account_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verification_token', sa.String(128), nullable=True),
        sa.Column('verification_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create account, appointment and chat tables."""

    # ==========================================================================
    # Accounts
    # ==========================================================================
    op.create_table(
        'patients',
        *_account_columns(),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('gender', sa.String(20), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'doctors',
        *_account_columns(),
        sa.Column('specialization', sa.String(120), nullable=False),
        sa.Column('qualification', sa.String(200), nullable=False),
        sa.Column('registration_number', sa.String(20), nullable=False),
        sa.Column('consultation_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('experience_years', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    # ==========================================================================
    # Appointments
    # ==========================================================================
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('doctor_id', sa.Uuid(), nullable=False),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('time_slot', sa.String(5), nullable=False),
        sa.Column('symptoms', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected', 'completed', 'cancelled')",
            name='ck_appointment_status',
        ),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_appointments_patient', 'appointments', ['patient_id', 'created_at'])
    op.create_index('idx_appointments_doctor', 'appointments', ['doctor_id', 'created_at'])

    # ==========================================================================
    # Chat
    # ==========================================================================
    op.create_table(
        'conversations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('doctor_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('appointment_id', sa.Uuid(), nullable=False),
        sa.Column('last_message', sa.Text(), nullable=False, server_default=''),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('unread_doctor', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unread_patient', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id']),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id', name='uq_conversation_appointment'),
    )
    op.create_index('idx_conversations_doctor', 'conversations', ['doctor_id', 'last_message_at'])
    op.create_index('idx_conversations_patient', 'conversations', ['patient_id', 'last_message_at'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('conversation_id', sa.Uuid(), nullable=False),
        sa.Column('sender_role', sa.String(10), nullable=False),
        sa.Column('sender_id', sa.Uuid(), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('message_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('attachment_url', sa.String(500), nullable=True),
        sa.Column('message_type', sa.String(10), nullable=False, server_default='text'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("sender_role IN ('doctor', 'patient')", name='ck_message_sender_role'),
        sa.CheckConstraint("message_type IN ('text', 'image', 'pdf')", name='ck_message_type'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('conversation_id', 'seq', name='uq_message_conversation_seq'),
    )
    op.create_index(
        'idx_messages_conversation_created', 'messages', ['conversation_id', 'created_at']
    )
    op.create_index('idx_messages_sender', 'messages', ['sender_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('appointments')
    op.drop_table('doctors')
    op.drop_table('patients')
