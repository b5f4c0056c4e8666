"""Failure kinds raised by the booking engine.

Each kind belongs to one caller-visible category:

- ``validation``: the request itself is wrong and the caller can fix it
- ``conflict``: the slot is taken, the caller may retry with other parameters
- ``forbidden``: ownership or lifecycle state forbids the operation
- ``infrastructure``: the store or lock failed, nothing was written
"""

from typing import Any, Dict, Optional

VALIDATION = "validation"
CONFLICT = "conflict"
FORBIDDEN = "forbidden"
INFRASTRUCTURE = "infrastructure"


class BookingError(Exception):
    """Base class for every engine failure"""

    category = INFRASTRUCTURE
    default_message = "Booking operation failed"

    def __init__(self, message: Optional[str] = None, **detail: Any):
        self.message = message or self.default_message
        self.detail: Dict[str, Any] = detail
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "detail": self.detail}


# Validation

class InvalidPhone(BookingError):
    category = VALIDATION
    default_message = "Phone number must be exactly 10 digits"


class MissingFields(BookingError):
    category = VALIDATION
    default_message = "Missing required fields: studio, date, start_time, end_time"


class DurationOutOfRange(BookingError):
    category = VALIDATION
    default_message = "Booking duration is out of range"


class DateOutOfWindow(BookingError):
    category = VALIDATION
    default_message = "Booking date is outside the booking window"


# Conflict

class SlotUnavailable(BookingError):
    category = CONFLICT
    default_message = "Time slot is no longer available"


class DuplicateBlackout(BookingError):
    category = CONFLICT
    default_message = "This slot is already blocked"


class AllSlotsConflicted(BookingError):
    category = CONFLICT
    default_message = "All slots conflict with existing confirmed bookings"


class AllDatesInPast(BookingError):
    category = VALIDATION
    default_message = "All provided dates/times are in the past"


# Authorization / state

class NotFoundOrForbidden(BookingError):
    category = FORBIDDEN
    default_message = "Booking not found or does not belong to this phone number"


class ImmutableStatus(BookingError):
    category = FORBIDDEN
    default_message = "Booking can no longer be changed"


class ModificationWindowClosed(BookingError):
    category = FORBIDDEN
    default_message = "Bookings can only be modified at least 24 hours before they start"


class BookingAlreadyElapsed(BookingError):
    category = FORBIDDEN
    default_message = "Cannot cancel a past booking"


class NotFound(BookingError):
    category = FORBIDDEN
    default_message = "Nothing matched"


# Infrastructure

class StoreUnavailable(BookingError):
    category = INFRASTRUCTURE
    default_message = "Booking store is unavailable, please retry"
