"""Database models"""

from studio_booking.models.reservation import Reservation, ReservationStatus, Studio, ACTIVE_STATUSES
from studio_booking.models.blackout import BlackoutSlot
from studio_booking.models.reminder import Reminder, ReminderKind, ReminderStatus
from studio_booking.models.settings import BookingSetting
from studio_booking.models.audit import AuditLog

__all__ = [
    "Reservation",
    "ReservationStatus",
    "Studio",
    "ACTIVE_STATUSES",
    "BlackoutSlot",
    "Reminder",
    "ReminderKind",
    "ReminderStatus",
    "BookingSetting",
    "AuditLog",
]
