"""Admin API endpoints: blackout slots and booking settings"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.api.auth import require_admin, require_staff
from studio_booking.api.deps import get_blackout_service, get_clock, get_settings_provider
from studio_booking.database import get_db
from studio_booking.engine.blackouts import BlackoutService
from studio_booking.engine.clock import LocalClock
from studio_booking.engine.rules import BookingRules, BookingRulesUpdate, SettingsProvider
from studio_booking.models.audit import AuditLog
from studio_booking.models.reservation import Studio
from studio_booking.schemas.auth import StaffContext
from studio_booking.schemas.blackout import (
    BlackoutCreate,
    BlackoutDelete,
    BlackoutDeleteResponse,
    BlackoutResponse,
    BulkBlackoutCreate,
    BulkBlackoutResponse,
)

router = APIRouter()


@router.get("/blackouts", response_model=List[BlackoutResponse])
async def list_blackouts(
    studio: Optional[Studio] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    staff: StaffContext = Depends(require_staff),
    service: BlackoutService = Depends(get_blackout_service),
):
    """List blocked slots"""
    return await service.list(studio, date_from, date_to)


@router.post("/blackouts", response_model=BlackoutResponse, status_code=201)
async def create_blackout(
    blackout_data: BlackoutCreate,
    staff: StaffContext = Depends(require_staff),
    service: BlackoutService = Depends(get_blackout_service),
):
    """Block one studio interval on one date"""
    return await service.create(blackout_data, staff)


@router.post("/blackouts/bulk", response_model=BulkBlackoutResponse, status_code=201)
async def bulk_create_blackouts(
    blackout_data: BulkBlackoutCreate,
    staff: StaffContext = Depends(require_staff),
    service: BlackoutService = Depends(get_blackout_service),
):
    """Block the same studio interval across many dates"""
    result = await service.bulk_create(blackout_data, staff)
    return BulkBlackoutResponse(
        count=result.created,
        dates=result.dates,
        skipped_past=result.skipped_past,
        skipped_conflicts=result.skipped_conflicts,
    )


@router.delete("/blackouts", response_model=BlackoutDeleteResponse)
async def delete_blackouts(
    delete_data: BlackoutDelete,
    staff: StaffContext = Depends(require_staff),
    service: BlackoutService = Depends(get_blackout_service),
):
    """Unblock slots by id or by studio and date range"""
    deleted = await service.delete(delete_data, staff)
    return BlackoutDeleteResponse(deleted_count=deleted)


@router.get("/settings", response_model=BookingRules)
async def get_booking_settings(
    staff: StaffContext = Depends(require_staff),
    provider: SettingsProvider = Depends(get_settings_provider),
    db: AsyncSession = Depends(get_db),
):
    """Current booking rules"""
    return await provider.load(db)


@router.put("/settings", response_model=BookingRules)
async def update_booking_settings(
    settings_data: BookingRulesUpdate,
    admin: StaffContext = Depends(require_admin),
    provider: SettingsProvider = Depends(get_settings_provider),
    clock: LocalClock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Replace the booking rules. Takes effect on the next request."""
    previous = await provider.load(db)
    rules = await provider.save(db, settings_data)

    db.add(
        AuditLog(
            actor_id=admin.id,
            actor_type=admin.role,
            action="update_settings",
            entity_type="booking_settings",
            old_data=previous.model_dump(),
            new_data=rules.model_dump(),
            created_at=clock(),
        )
    )
    await db.commit()

    return rules
