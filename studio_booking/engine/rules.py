"""Booking rules read from the booking_settings table"""

from typing import Dict

from pydantic import BaseModel, model_validator
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from studio_booking.engine.intervals import to_minutes
from studio_booking.models.settings import BookingSetting

logger = structlog.get_logger()


class BookingRules(BaseModel):
    """Snapshot of the tunables every validation runs against"""
    min_booking_duration: float = 1  # hours
    max_booking_duration: float = 8  # hours
    booking_buffer: int = 0  # minutes
    advance_booking_days: int = 30
    default_open_time: str = "08:00"
    default_close_time: str = "22:00"

    @property
    def open_minute(self) -> int:
        return to_minutes(self.default_open_time)

    @property
    def close_minute(self) -> int:
        return to_minutes(self.default_close_time, allow_end_of_day=True)


class BookingRulesUpdate(BookingRules):
    """Admin update, bounded the way the settings screen allows"""

    @model_validator(mode="after")
    def check_bounds(self):
        if not 1 <= self.min_booking_duration <= 24:
            raise ValueError("Minimum booking duration must be between 1 and 24 hours")
        if not 1 <= self.max_booking_duration <= 24:
            raise ValueError("Maximum booking duration must be between 1 and 24 hours")
        if self.min_booking_duration > self.max_booking_duration:
            raise ValueError("Minimum duration cannot be greater than maximum duration")
        if not 0 <= self.booking_buffer <= 120:
            raise ValueError("Booking buffer must be between 0 and 120 minutes")
        if not 1 <= self.advance_booking_days <= 365:
            raise ValueError("Advance booking days must be between 1 and 365")
        if self.open_minute >= self.close_minute:
            raise ValueError("Opening time must be before closing time")
        return self


# booking_settings key -> BookingRules field
SETTING_KEYS: Dict[str, str] = {
    "min_booking_duration": "min_booking_duration",
    "max_booking_duration": "max_booking_duration",
    "booking_buffer": "booking_buffer",
    "advance_booking_days": "advance_booking_days",
    "default_open_time": "default_open_time",
    "default_close_time": "default_close_time",
}

DESCRIPTIONS = {
    "min_booking_duration": "Minimum booking duration in hours",
    "max_booking_duration": "Maximum booking duration in hours",
    "booking_buffer": "Buffer time between bookings in minutes",
    "advance_booking_days": "How many days in advance users can book",
    "default_open_time": "Default studio opening time",
    "default_close_time": "Default studio closing time",
}


class SettingsProvider:
    """Reads and writes BookingRules. Never caches."""

    async def load(self, db: AsyncSession) -> BookingRules:
        values = {}
        try:
            result = await db.execute(select(BookingSetting.key, BookingSetting.value))
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch booking settings, using defaults", error=str(e))
            return BookingRules()

        for key, value in rows:
            field = SETTING_KEYS.get(key)
            if field is None:
                continue
            if isinstance(value, str):
                value = value.strip('"')
            values[field] = value

        try:
            return BookingRules(**values)
        except ValueError as e:
            logger.error("Invalid booking settings stored, using defaults", error=str(e))
            return BookingRules()

    async def save(self, db: AsyncSession, rules: BookingRules) -> BookingRules:
        result = await db.execute(select(BookingSetting))
        existing = {row.key: row for row in result.scalars().all()}

        for key, field in SETTING_KEYS.items():
            value = getattr(rules, field)
            row = existing.get(key)
            if row is None:
                db.add(BookingSetting(key=key, value=value, description=DESCRIPTIONS[key]))
            else:
                row.value = value

        await db.flush()
        logger.info("Booking settings updated", **rules.model_dump())
        return BookingRules(**rules.model_dump())
