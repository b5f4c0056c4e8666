"""Administrative blackouts: blocking studio time outside of reservations"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Sequence
from uuid import UUID

import structlog

from studio_booking.engine.errors import (
    AllDatesInPast,
    AllSlotsConflicted,
    DuplicateBlackout,
    MissingFields,
    NotFound,
)
from studio_booking.engine.intervals import to_minutes
from studio_booking.engine.locks import SlotLockRegistry, slot_key
from studio_booking.engine.store import AvailabilityStore, atomic, read_only
from studio_booking.models.audit import AuditLog
from studio_booking.models.blackout import BlackoutSlot
from studio_booking.models.reservation import Studio
from studio_booking.schemas.auth import StaffContext
from studio_booking.schemas.blackout import BlackoutCreate, BlackoutDelete, BulkBlackoutCreate

logger = structlog.get_logger()


@dataclass
class BulkBlackoutResult:
    created: int
    dates: List[date]
    skipped_past: List[date] = field(default_factory=list)
    skipped_conflicts: List[date] = field(default_factory=list)


def _interval(start_time: str, end_time: str):
    try:
        start = to_minutes(start_time)
        end = to_minutes(end_time, allow_end_of_day=True)
    except ValueError as e:
        raise MissingFields(str(e), start_time=start_time, end_time=end_time)
    if end <= start:
        raise MissingFields("End time must be after start time", start_time=start_time, end_time=end_time)
    return start, end


def _audit(
    store: AvailabilityStore,
    actor: StaffContext,
    action: str,
    created_at: datetime,
    old_data=None,
    new_data=None,
) -> None:
    store.db.add(
        AuditLog(
            actor_id=actor.id,
            actor_type=actor.role,
            action=action,
            entity_type="availability_slot",
            old_data=old_data,
            new_data=new_data,
            created_at=created_at,
        )
    )


def _describe(slot: BlackoutSlot) -> dict:
    return {
        "id": str(slot.id),
        "studio": slot.studio.value,
        "date": slot.date.isoformat(),
        "start_time": slot.start_time,
        "end_time": slot.end_time,
    }


class BlackoutService:
    """Creates and removes blackout slots under the same locks as reservations"""

    def __init__(self, session_factory, locks: SlotLockRegistry, clock: Callable[[], datetime]):
        self.session_factory = session_factory
        self.locks = locks
        self.clock = clock

    async def create(self, request: BlackoutCreate, creator: StaffContext) -> BlackoutSlot:
        start, end = _interval(request.start_time, request.end_time)
        now = self.clock()

        async with atomic(self.session_factory, self.locks, [slot_key(request.studio, request.date)]) as store:
            if await store.get_blackout(request.studio, request.date, start, end) is not None:
                raise DuplicateBlackout(
                    studio=request.studio.value,
                    date=request.date.isoformat(),
                    start_time=request.start_time,
                    end_time=request.end_time,
                )
            slot = BlackoutSlot(
                studio=request.studio,
                date=request.date,
                start_minute=start,
                end_minute=end,
                is_available=False,
                reason=request.reason,
                created_by=creator.id,
                created_at=now,
            )
            store.db.add(slot)
            await store.db.flush()
            _audit(store, creator, "block_slot", now, new_data=_describe(slot))

        logger.info(
            "Blackout created",
            studio=request.studio.value,
            date=request.date.isoformat(),
            start=request.start_time,
            end=request.end_time,
            staff_id=creator.id,
        )
        return slot

    async def bulk_create(self, request: BulkBlackoutCreate, creator: StaffContext) -> BulkBlackoutResult:
        """Block one interval across many dates.

        Dates already past (or today with the start already gone) are skipped,
        then dates with a confirmed reservation overlapping the interval.
        Existing identical blackouts are left alone, so repeating a call
        creates nothing.
        """
        start, end = _interval(request.start_time, request.end_time)
        now = self.clock()
        today, minute_now = now.date(), now.hour * 60 + now.minute

        requested = sorted(set(request.dates))
        skipped_past = [d for d in requested if d < today or (d == today and start < minute_now)]
        candidates = [d for d in requested if d not in skipped_past]
        if not candidates:
            raise AllDatesInPast(skipped_past=[d.isoformat() for d in skipped_past])

        keys = [slot_key(request.studio, d) for d in candidates]
        async with atomic(self.session_factory, self.locks, keys) as store:
            conflicted = await store.confirmed_conflict_dates(request.studio, candidates, start, end)
            valid = [d for d in candidates if d not in conflicted]
            if not valid:
                raise AllSlotsConflicted(
                    skipped_past=[d.isoformat() for d in skipped_past],
                    skipped_conflicts=[d.isoformat() for d in sorted(conflicted)],
                )

            created = await store.insert_blackouts(
                request.studio,
                valid,
                start,
                end,
                created_by=creator.id,
                created_at=now,
                reason=request.reason,
            )
            _audit(
                store,
                creator,
                "bulk_block",
                now,
                new_data={
                    "studio": request.studio.value,
                    "dates": [d.isoformat() for d in valid],
                    "start_time": request.start_time,
                    "end_time": request.end_time,
                    "created": len(created),
                },
            )

        logger.info(
            "Bulk blackout applied",
            studio=request.studio.value,
            requested=len(requested),
            created=len(created),
            skipped_past=len(skipped_past),
            skipped_conflicts=len(conflicted),
            staff_id=creator.id,
        )
        return BulkBlackoutResult(
            created=len(created),
            dates=created,
            skipped_past=skipped_past,
            skipped_conflicts=sorted(conflicted),
        )

    async def delete(self, request: BlackoutDelete, actor: StaffContext) -> int:
        if request.ids:
            # Look up the keys first so deletion runs under their locks
            keys = [slot_key(s.studio, s.date) for s in await self.get_many(request.ids)]
        else:
            days = (request.end_date - request.start_date).days + 1
            keys = [slot_key(request.studio, request.start_date + timedelta(days=n)) for n in range(max(days, 0))]

        async with atomic(self.session_factory, self.locks, keys) as store:
            if request.ids:
                removed = await store.delete_blackouts_by_id(request.ids)
            else:
                removed = await store.delete_blackouts_in_range(request.studio, request.start_date, request.end_date)
            if not removed:
                raise NotFound("No blocked slots found to delete")
            _audit(store, actor, "bulk_unblock", self.clock(), old_data={"slots": [_describe(s) for s in removed]})

        logger.info("Blackouts removed", count=len(removed), staff_id=actor.id)
        return len(removed)

    async def list(
        self,
        studio: Optional[Studio] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Sequence[BlackoutSlot]:
        async with read_only(self.session_factory) as store:
            return await store.list_blackouts(studio, date_from, date_to)

    async def get_many(self, ids: Sequence[UUID]) -> List[BlackoutSlot]:
        async with read_only(self.session_factory) as store:
            return await store.get_blackouts(ids)
