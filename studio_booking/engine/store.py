"""Availability store: reservations and blackout slots sharing one key space"""

import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from studio_booking.engine.errors import StoreUnavailable
from studio_booking.engine.intervals import Interval
from studio_booking.engine.locks import SlotKey, SlotLockRegistry, lock_in_database
from studio_booking.engine.reminders import ReminderDraft
from studio_booking.models.blackout import BlackoutSlot
from studio_booking.models.reminder import Reminder, ReminderStatus
from studio_booking.models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus, Studio

logger = structlog.get_logger()


class AvailabilityStore:
    """Queries and mutations over one session. Callers own the transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Reservations

    async def get_reservation(self, reservation_id: UUID, for_update: bool = False) -> Optional[Reservation]:
        query = select(Reservation).where(Reservation.id == reservation_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_conflicts(
        self,
        studio: Studio,
        day: date,
        start: int,
        end: int,
        exclude_id: Optional[UUID] = None,
    ) -> List[Reservation]:
        """Active reservations whose stored interval overlaps [start, end)"""
        query = select(Reservation).where(
            Reservation.studio == studio,
            Reservation.date == day,
            Reservation.status.in_(ACTIVE_STATUSES),
            Reservation.start_minute < end,
            Reservation.end_minute > start,
        )
        if exclude_id is not None:
            query = query.where(Reservation.id != exclude_id)
        result = await self.db.execute(query.order_by(Reservation.start_minute))
        return list(result.scalars().all())

    async def active_intervals(self, studio: Studio, day: date) -> List[Interval]:
        result = await self.db.execute(
            select(Reservation.start_minute, Reservation.end_minute).where(
                Reservation.studio == studio,
                Reservation.date == day,
                Reservation.status.in_(ACTIVE_STATUSES),
            )
        )
        return [(row.start_minute, row.end_minute) for row in result.all()]

    async def confirmed_conflict_dates(
        self,
        studio: Studio,
        days: Sequence[date],
        start: int,
        end: int,
    ) -> Set[date]:
        """Dates with a confirmed reservation overlapping the raw interval"""
        if not days:
            return set()
        result = await self.db.execute(
            select(Reservation.date).where(
                Reservation.studio == studio,
                Reservation.date.in_(list(days)),
                Reservation.status == ReservationStatus.CONFIRMED,
                Reservation.start_minute < end,
                Reservation.end_minute > start,
            )
        )
        return set(result.scalars().all())

    async def list_for_phone(self, phone: str, from_date: Optional[date] = None) -> List[Reservation]:
        query = select(Reservation).where(Reservation.phone_number == phone)
        if from_date is not None:
            query = query.where(
                Reservation.date >= from_date,
                Reservation.status.in_(ACTIVE_STATUSES),
            )
        result = await self.db.execute(query.order_by(Reservation.date, Reservation.start_minute))
        return list(result.scalars().all())

    # Blackouts

    async def find_blackouts(self, studio: Studio, day: date, start: int, end: int) -> List[BlackoutSlot]:
        result = await self.db.execute(
            select(BlackoutSlot).where(
                BlackoutSlot.studio == studio,
                BlackoutSlot.date == day,
                BlackoutSlot.is_available.is_(False),
                BlackoutSlot.start_minute < end,
                BlackoutSlot.end_minute > start,
            )
        )
        return list(result.scalars().all())

    async def blackout_intervals(self, studio: Studio, day: date) -> List[Interval]:
        result = await self.db.execute(
            select(BlackoutSlot.start_minute, BlackoutSlot.end_minute).where(
                BlackoutSlot.studio == studio,
                BlackoutSlot.date == day,
                BlackoutSlot.is_available.is_(False),
            )
        )
        return [(row.start_minute, row.end_minute) for row in result.all()]

    async def get_blackout(self, studio: Studio, day: date, start: int, end: int) -> Optional[BlackoutSlot]:
        result = await self.db.execute(
            select(BlackoutSlot).where(
                BlackoutSlot.studio == studio,
                BlackoutSlot.date == day,
                BlackoutSlot.start_minute == start,
                BlackoutSlot.end_minute == end,
            )
        )
        return result.scalar_one_or_none()

    async def list_blackouts(
        self,
        studio: Optional[Studio] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[BlackoutSlot]:
        query = select(BlackoutSlot)
        if studio is not None:
            query = query.where(BlackoutSlot.studio == studio)
        if date_from is not None:
            query = query.where(BlackoutSlot.date >= date_from)
        if date_to is not None:
            query = query.where(BlackoutSlot.date <= date_to)
        result = await self.db.execute(
            query.order_by(BlackoutSlot.date, BlackoutSlot.studio, BlackoutSlot.start_minute)
        )
        return list(result.scalars().all())

    async def get_blackouts(self, ids: Sequence[UUID]) -> List[BlackoutSlot]:
        if not ids:
            return []
        result = await self.db.execute(select(BlackoutSlot).where(BlackoutSlot.id.in_(list(ids))))
        return list(result.scalars().all())

    async def insert_blackouts(
        self,
        studio: Studio,
        days: Iterable[date],
        start: int,
        end: int,
        created_by: Optional[str],
        created_at: datetime,
        reason: Optional[str] = None,
    ) -> List[date]:
        """Upsert one blocked row per date. Returns the dates newly inserted."""
        rows = [
            {
                "id": uuid.uuid4(),
                "studio": studio,
                "date": day,
                "start_minute": start,
                "end_minute": end,
                "is_available": False,
                "reason": reason,
                "created_by": created_by,
                "created_at": created_at,
            }
            for day in days
        ]
        if not rows:
            return []

        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            return await self._insert_missing_blackouts(rows)

        statement = (
            insert(BlackoutSlot)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["studio", "date", "start_minute", "end_minute"])
            .returning(BlackoutSlot.date)
        )
        result = await self.db.execute(statement)
        return sorted(result.scalars().all())

    async def _insert_missing_blackouts(self, rows: List[dict]) -> List[date]:
        created = []
        for row in rows:
            existing = await self.get_blackout(row["studio"], row["date"], row["start_minute"], row["end_minute"])
            if existing is None:
                self.db.add(BlackoutSlot(**row))
                created.append(row["date"])
        await self.db.flush()
        return sorted(created)

    async def delete_blackouts_by_id(self, ids: Sequence[UUID]) -> List[BlackoutSlot]:
        slots = await self.get_blackouts(ids)
        if slots:
            await self.db.execute(delete(BlackoutSlot).where(BlackoutSlot.id.in_([s.id for s in slots])))
        return slots

    async def delete_blackouts_in_range(self, studio: Studio, date_from: date, date_to: date) -> List[BlackoutSlot]:
        slots = await self.list_blackouts(studio, date_from, date_to)
        if slots:
            await self.db.execute(delete(BlackoutSlot).where(BlackoutSlot.id.in_([s.id for s in slots])))
        return slots

    # Reminders

    def add_reminders(self, drafts: Iterable[ReminderDraft], created_at: datetime) -> None:
        for draft in drafts:
            self.db.add(draft.to_model(created_at))

    async def cancel_pending_reminders(self, reservation_id: UUID) -> int:
        result = await self.db.execute(
            update(Reminder)
            .where(
                Reminder.reservation_id == reservation_id,
                Reminder.status == ReminderStatus.PENDING,
            )
            .values(status=ReminderStatus.CANCELLED)
        )
        return result.rowcount

    async def reminders_for(self, reservation_id: UUID) -> List[Reminder]:
        result = await self.db.execute(
            select(Reminder)
            .where(Reminder.reservation_id == reservation_id)
            .order_by(Reminder.created_at, Reminder.scheduled_at)
        )
        return list(result.scalars().all())


@asynccontextmanager
async def atomic(session_factory, locks: SlotLockRegistry, keys: Iterable[SlotKey]):
    """Exclusive section for the given (studio, date) keys.

    Yields a store bound to a fresh transaction. The transaction commits when
    the block exits cleanly and rolls back on any exception, before the locks
    are released.
    """
    keys = list(keys)
    async with locks.hold(keys):
        try:
            async with session_factory() as db:
                async with db.begin():
                    await lock_in_database(db, keys)
                    yield AvailabilityStore(db)
        except SQLAlchemyError as e:
            logger.error("Booking store failure", error=str(e))
            raise StoreUnavailable(error=type(e).__name__) from e


@asynccontextmanager
async def read_only(session_factory):
    """Store for listings; takes no lock"""
    try:
        async with session_factory() as db:
            yield AvailabilityStore(db)
    except SQLAlchemyError as e:
        logger.error("Booking store failure", error=str(e))
        raise StoreUnavailable(error=type(e).__name__) from e
