"""Request validation shared by create and modify"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from studio_booking.engine.errors import DateOutOfWindow, DurationOutOfRange, InvalidPhone, MissingFields
from studio_booking.engine.intervals import to_minutes
from studio_booking.engine.rules import BookingRules
from studio_booking.models.reservation import Studio

PHONE_DIGITS = 10


def normalize_phone(phone: Optional[str]) -> str:
    """Strip everything but digits; anything other than 10 digits is rejected"""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) != PHONE_DIGITS:
        raise InvalidPhone(digits=len(digits))
    return digits


def digits_only(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


@dataclass(frozen=True)
class RequestedSlot:
    studio: Studio
    date: date
    start: int
    end: int

    @property
    def duration_hours(self) -> float:
        return (self.end - self.start) / 60

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.date, time()) + timedelta(minutes=self.start)


def parse_slot(
    studio: Optional[Studio],
    day: Optional[date],
    start_time: Optional[str],
    end_time: Optional[str],
) -> RequestedSlot:
    missing = [
        name
        for name, value in (("studio", studio), ("date", day), ("start_time", start_time), ("end_time", end_time))
        if not value
    ]
    if missing:
        raise MissingFields(missing=missing)

    try:
        start = to_minutes(start_time)
        end = to_minutes(end_time, allow_end_of_day=True)
    except ValueError as e:
        raise MissingFields(str(e), start_time=start_time, end_time=end_time)

    if end <= start:
        raise MissingFields("End time must be after start time", start_time=start_time, end_time=end_time)

    return RequestedSlot(Studio(studio), day, start, end)


def check_duration(slot: RequestedSlot, rules: BookingRules) -> None:
    hours = slot.duration_hours
    if hours < rules.min_booking_duration:
        raise DurationOutOfRange(
            f"Minimum booking duration is {rules.min_booking_duration:g} hour(s)",
            bound="min",
            limit=rules.min_booking_duration,
            requested=hours,
        )
    if hours > rules.max_booking_duration:
        raise DurationOutOfRange(
            f"Maximum booking duration is {rules.max_booking_duration:g} hours",
            bound="max",
            limit=rules.max_booking_duration,
            requested=hours,
        )


def check_date_window(day: date, today: date, rules: BookingRules) -> None:
    """Bookable dates run from tomorrow to today + advance_booking_days"""
    if day <= today:
        raise DateOutOfWindow(
            "Bookings must be made at least one day in advance",
            bound="earliest",
            earliest=(today + timedelta(days=1)).isoformat(),
        )
    latest = today + timedelta(days=rules.advance_booking_days)
    if day > latest:
        raise DateOutOfWindow(
            f"Cannot book more than {rules.advance_booking_days} days in advance",
            bound="latest",
            latest=latest.isoformat(),
        )


def compute_total(rate_per_hour: Optional[float], slot: RequestedSlot) -> Optional[int]:
    if not rate_per_hour:
        return None
    # Half-up, matching how totals are quoted to customers
    return math.floor(rate_per_hour * slot.duration_hours + 0.5)
