"""Reservation schemas"""

from datetime import date as Date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field

from studio_booking.models.reservation import ReservationStatus, Studio


class ReservationCreate(BaseModel):
    """Create reservation request

    Slot fields are optional here so the engine can report them as a
    missing-fields failure after validating the phone number.
    """
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    studio: Optional[Studio] = None
    date: Optional[Date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    session_type: Optional[str] = None
    session_details: Optional[str] = None
    notes: Optional[str] = None
    rate_per_hour: Optional[float] = Field(default=None, ge=0)


class ReservationModify(BaseModel):
    """Modify reservation request. Omitted fields keep their current value.

    ``phone`` proves ownership; staff requests may leave it out.
    """
    phone: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    studio: Optional[Studio] = None
    date: Optional[Date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    session_type: Optional[str] = None
    session_details: Optional[str] = None
    notes: Optional[str] = None
    rate_per_hour: Optional[float] = Field(default=None, ge=0)


class ReservationCancel(BaseModel):
    """Cancel reservation request"""
    phone: Optional[str] = None
    reason: Optional[str] = None


class ReservationResponse(BaseModel):
    """Reservation response"""
    id: UUID
    studio: Studio
    date: Date
    start_time: str
    end_time: str
    status: ReservationStatus
    phone_number: str
    name: Optional[str]
    email: Optional[str]
    session_type: Optional[str]
    session_details: Optional[str]
    notes: Optional[str]
    total_amount: Optional[Decimal]
    google_event_id: Optional[str]
    email_sent: Optional[bool]
    created_by_staff_id: Optional[str]
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancelled_by: Optional[str]
    cancellation_reason: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class ReservationListResponse(BaseModel):
    """Reservations for one phone number"""
    items: List[ReservationResponse]
    total: int


class AvailabilitySlot(BaseModel):
    """Open sub-interval"""
    start: str
    end: str


class AvailabilityResponse(BaseModel):
    """Availability listing for one studio and date"""
    studio: Studio
    date: Date
    slots: List[AvailabilitySlot] = []
