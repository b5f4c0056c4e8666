"""Initial migration

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
import uuid
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create reservations table
    op.create_table(
        'reservations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('phone_number', sa.String(15), nullable=False),
        sa.Column('name', sa.String(255)),
        sa.Column('email', sa.String(255)),
        sa.Column('studio', sa.String(100), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_minute', sa.Integer(), nullable=False),
        sa.Column('end_minute', sa.Integer(), nullable=False),
        sa.Column('session_type', sa.String(100)),
        sa.Column('session_details', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('total_amount', sa.Numeric(10, 2)),
        sa.Column('status', sa.String(20), nullable=False, server_default='confirmed'),
        sa.Column('confirmed_at', sa.DateTime()),
        sa.Column('cancelled_at', sa.DateTime()),
        sa.Column('cancelled_by', sa.String(50)),
        sa.Column('cancellation_reason', sa.Text()),
        sa.Column('google_event_id', sa.String(255)),
        sa.Column('email_sent', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_by_staff_id', sa.String(64)),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('end_minute > start_minute', name='chk_reservation_time_range'),
        sa.CheckConstraint('start_minute >= 0 AND end_minute <= 1440', name='chk_reservation_day_bounds'),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no_show')",
            name='chk_reservation_status',
        ),
    )

    # Create blackout_slots table
    op.create_table(
        'blackout_slots',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('studio', sa.String(100), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_minute', sa.Integer(), nullable=False),
        sa.Column('end_minute', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reason', sa.Text()),
        sa.Column('created_by', sa.String(64)),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('end_minute > start_minute', name='chk_blackout_time_range'),
        sa.UniqueConstraint('studio', 'date', 'start_minute', 'end_minute', name='uq_blackout_slot'),
    )

    # Create reminders table
    op.create_table(
        'reminders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'reservation_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('reservations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('sent_at', sa.DateTime()),
        sa.Column('error_message', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create booking_settings table
    settings_table = op.create_table(
        'booking_settings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('key', sa.String(100), unique=True, nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create audit_logs table
    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('actor_id', sa.String(64)),
        sa.Column('actor_type', sa.String(50)),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(50)),
        sa.Column('old_data', sa.JSON()),
        sa.Column('new_data', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create indexes
    op.create_index('ix_reservations_phone_number', 'reservations', ['phone_number'])
    op.create_index('ix_reservations_studio_date', 'reservations', ['studio', 'date'])
    op.create_index('ix_blackout_slots_date', 'blackout_slots', ['date'])
    op.create_index('ix_reminders_reservation_id', 'reminders', ['reservation_id'])
    op.create_index('ix_reminders_scheduled_at', 'reminders', ['scheduled_at'])
    op.create_index('ix_reminders_status', 'reminders', ['status'])

    # Default booking rules
    op.bulk_insert(settings_table, [
        {'id': uuid.UUID(row_id), 'key': key, 'value': value, 'description': description}
        for row_id, key, value, description in [
            ('00000000-0000-0000-0000-000000000001', 'min_booking_duration', 1, 'Minimum booking duration in hours'),
            ('00000000-0000-0000-0000-000000000002', 'max_booking_duration', 8, 'Maximum booking duration in hours'),
            ('00000000-0000-0000-0000-000000000003', 'booking_buffer', 0, 'Buffer time between bookings in minutes'),
            ('00000000-0000-0000-0000-000000000004', 'advance_booking_days', 30, 'How many days in advance users can book'),
            ('00000000-0000-0000-0000-000000000005', 'default_open_time', '08:00', 'Default studio opening time'),
            ('00000000-0000-0000-0000-000000000006', 'default_close_time', '22:00', 'Default studio closing time'),
        ]
    ])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('booking_settings')
    op.drop_table('reminders')
    op.drop_table('blackout_slots')
    op.drop_table('reservations')
