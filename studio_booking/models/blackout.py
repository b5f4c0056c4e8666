"""Blackout slot model"""

import uuid
from datetime import datetime
from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Enum, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from studio_booking.database import Base
from studio_booking.engine.intervals import from_minutes
from studio_booking.models.reservation import Studio, enum_values


class BlackoutSlot(Base):
    """Admin-declared interval in which a studio is not offered"""
    __tablename__ = "blackout_slots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    studio = Column(Enum(Studio, native_enum=False, values_callable=enum_values, length=100), nullable=False)
    date = Column(Date, nullable=False, index=True)
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)
    is_available = Column(Boolean, default=False, nullable=False)  # false = blocked
    reason = Column(Text)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("end_minute > start_minute", name="chk_blackout_time_range"),
        UniqueConstraint("studio", "date", "start_minute", "end_minute", name="uq_blackout_slot"),
    )

    def __repr__(self) -> str:
        return f"<BlackoutSlot {self.studio} {self.date} {self.start_minute}-{self.end_minute}>"

    @property
    def start_time(self) -> str:
        return from_minutes(self.start_minute)

    @property
    def end_time(self) -> str:
        return from_minutes(self.end_minute)
