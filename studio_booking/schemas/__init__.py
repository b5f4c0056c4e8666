"""Pydantic schemas for request/response validation"""

from studio_booking.schemas.auth import (
    TokenPayload,
    StaffContext,
)
from studio_booking.schemas.reservation import (
    ReservationCreate,
    ReservationModify,
    ReservationCancel,
    ReservationResponse,
    ReservationListResponse,
    AvailabilitySlot,
    AvailabilityResponse,
)
from studio_booking.schemas.blackout import (
    BlackoutCreate,
    BulkBlackoutCreate,
    BlackoutDelete,
    BlackoutResponse,
    BulkBlackoutResponse,
    BlackoutDeleteResponse,
)

__all__ = [
    "TokenPayload",
    "StaffContext",
    "ReservationCreate",
    "ReservationModify",
    "ReservationCancel",
    "ReservationResponse",
    "ReservationListResponse",
    "AvailabilitySlot",
    "AvailabilityResponse",
    "BlackoutCreate",
    "BulkBlackoutCreate",
    "BlackoutDelete",
    "BlackoutResponse",
    "BulkBlackoutResponse",
    "BlackoutDeleteResponse",
]
