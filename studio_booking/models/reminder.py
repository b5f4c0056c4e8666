"""Reminder model"""

import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from studio_booking.database import Base
from studio_booking.models.reservation import enum_values


class ReminderKind(str, enum.Enum):
    CONFIRMATION = "confirmation"
    DAY_BEFORE = "24h_reminder"
    HOUR_BEFORE = "1h_reminder"


class ReminderStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Reminder(Base):
    """Scheduled notification tied to a reservation's start time"""
    __tablename__ = "reminders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reservation_id = Column(
        UUID(as_uuid=True),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scheduled_at = Column(DateTime, nullable=False, index=True)
    kind = Column(Enum(ReminderKind, native_enum=False, values_callable=enum_values, length=50), nullable=False)
    status = Column(
        Enum(ReminderStatus, native_enum=False, values_callable=enum_values, length=20),
        nullable=False,
        default=ReminderStatus.PENDING,
        index=True,
    )
    sent_at = Column(DateTime)
    error_message = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    reservation = relationship("Reservation", back_populates="reminders")
