"""Booking and availability API endpoints"""

from datetime import date as Date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from studio_booking.api.auth import optional_staff
from studio_booking.api.deps import get_reservation_engine, get_rules
from studio_booking.engine.errors import NotFoundOrForbidden
from studio_booking.engine.intervals import from_minutes
from studio_booking.engine.reservations import ReservationEngine
from studio_booking.engine.rules import BookingRules
from studio_booking.engine.validation import digits_only
from studio_booking.models.reservation import Studio
from studio_booking.schemas.auth import StaffContext
from studio_booking.schemas.reservation import (
    AvailabilityResponse,
    AvailabilitySlot,
    ReservationCancel,
    ReservationCreate,
    ReservationListResponse,
    ReservationModify,
    ReservationResponse,
)

router = APIRouter()
availability_router = APIRouter()


@router.post("", response_model=ReservationResponse, status_code=201)
async def create_booking(
    booking_data: ReservationCreate,
    staff: Optional[StaffContext] = Depends(optional_staff),
    rules: BookingRules = Depends(get_rules),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Create a new booking"""
    return await engine.create(booking_data, rules, staff)


@router.get("", response_model=ReservationListResponse)
async def list_bookings(
    phone: str,
    upcoming: bool = True,
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """List bookings for a phone number, upcoming active ones by default"""
    reservations = await engine.list_for_phone(phone, upcoming_only=upcoming)
    return ReservationListResponse(items=reservations, total=len(reservations))


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_booking(
    reservation_id: UUID,
    phone: Optional[str] = None,
    staff: Optional[StaffContext] = Depends(optional_staff),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Get booking details"""
    reservation = await engine.get(reservation_id)
    if reservation is None or (staff is None and reservation.phone_number != digits_only(phone)):
        raise NotFoundOrForbidden(reservation_id=str(reservation_id))
    return reservation


@router.put("/{reservation_id}", response_model=ReservationResponse)
async def modify_booking(
    reservation_id: UUID,
    booking_data: ReservationModify,
    staff: Optional[StaffContext] = Depends(optional_staff),
    rules: BookingRules = Depends(get_rules),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Move or edit a booking"""
    return await engine.modify(reservation_id, booking_data, rules, staff)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_booking(
    reservation_id: UUID,
    cancel_data: ReservationCancel,
    staff: Optional[StaffContext] = Depends(optional_staff),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Cancel a booking"""
    return await engine.cancel(reservation_id, cancel_data, staff)


@availability_router.get("", response_model=AvailabilityResponse)
async def check_availability(
    studio: Studio,
    date: Date,
    granularity: str = Query("interval", pattern="^(interval|hour)$"),
    rules: BookingRules = Depends(get_rules),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Open time for one studio on one date"""
    free = await engine.list_availability(studio, date, rules, hourly=granularity == "hour")
    return AvailabilityResponse(
        studio=studio,
        date=date,
        slots=[AvailabilitySlot(start=from_minutes(start), end=from_minutes(end)) for start, end in free],
    )
