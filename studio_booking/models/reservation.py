"""Reservation model"""

import enum
import uuid
from datetime import datetime, time, timedelta
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from studio_booking.database import Base
from studio_booking.engine.intervals import from_minutes


class Studio(str, enum.Enum):
    """The three bookable rooms"""
    A = "Studio A"
    B = "Studio B"
    C = "Studio C"


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that occupy the studio. Everything else is history.
ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


def enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Reservation(Base):
    """Table reservations"""
    __tablename__ = "reservations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Customer information
    phone_number = Column(String(15), nullable=False, index=True)
    name = Column(String(255))
    email = Column(String(255))

    # Slot
    studio = Column(Enum(Studio, native_enum=False, values_callable=enum_values, length=100), nullable=False)
    date = Column(Date, nullable=False)
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)

    # Session details
    session_type = Column(String(100))
    session_details = Column(Text)
    notes = Column(Text)
    total_amount = Column(Numeric(10, 2))

    # Status
    status = Column(
        Enum(ReservationStatus, native_enum=False, values_callable=enum_values, length=20),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
    )
    confirmed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancelled_by = Column(String(50))  # customer, staff
    cancellation_reason = Column(Text)

    # External systems
    google_event_id = Column(String(255))
    email_sent = Column(Boolean, default=False)
    created_by_staff_id = Column(String(64))

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    reminders = relationship("Reminder", back_populates="reservation", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("end_minute > start_minute", name="chk_reservation_time_range"),
        CheckConstraint("start_minute >= 0 AND end_minute <= 1440", name="chk_reservation_day_bounds"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no_show')",
            name="chk_reservation_status",
        ),
        Index("ix_reservations_studio_date", "studio", "date"),
    )

    def __repr__(self) -> str:
        return f"<Reservation {self.id} {self.studio} {self.date} {self.start_minute}-{self.end_minute} {self.status}>"

    @property
    def start_time(self) -> str:
        return from_minutes(self.start_minute)

    @property
    def end_time(self) -> str:
        return from_minutes(self.end_minute)

    @property
    def start_at(self) -> datetime:
        """Local wall-clock start"""
        return datetime.combine(self.date, time()) + timedelta(minutes=self.start_minute)
