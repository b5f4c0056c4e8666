"""Reservation engine: create, modify and cancel under the slot lock.

Every mutation follows the same shape:

1. validate what can be validated without the store
2. take the (studio, date) lock(s) and open a transaction
3. re-read whatever the decision depends on, check, write
4. commit, release, then publish a post-commit event

Only step 4 talks to the outside world, and nothing it does can undo the
commit.
"""

import uuid
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

import structlog

from studio_booking.engine.errors import (
    BookingAlreadyElapsed,
    ImmutableStatus,
    ModificationWindowClosed,
    NotFoundOrForbidden,
    SlotUnavailable,
    StoreUnavailable,
)
from studio_booking.engine.intervals import Interval, expand, free_chunks, hour_chunks, subtract
from studio_booking.engine.locks import SlotLockRegistry, slot_key
from studio_booking.engine.reminders import initial_batch, rescheduled_pair
from studio_booking.engine.rules import BookingRules
from studio_booking.engine.store import AvailabilityStore, atomic, read_only
from studio_booking.engine.validation import (
    RequestedSlot,
    check_date_window,
    check_duration,
    compute_total,
    digits_only,
    normalize_phone,
    parse_slot,
)
from studio_booking.models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus, Studio
from studio_booking.notifications.dispatcher import NotificationDispatcher
from studio_booking.notifications.events import EventKind, ReservationEvent, ReservationSnapshot
from studio_booking.schemas.auth import StaffContext
from studio_booking.schemas.reservation import ReservationCancel, ReservationCreate, ReservationModify

logger = structlog.get_logger()

MODIFICATION_NOTICE = timedelta(hours=24)
IMMUTABLE_STATUSES = (ReservationStatus.CANCELLED, ReservationStatus.COMPLETED)

# A reservation can move between studio/date keys while we wait for its lock.
MAX_RELOCK_ATTEMPTS = 3


class ReservationEngine:
    """Orchestrates reservation validation and the atomic commit protocol"""

    def __init__(
        self,
        session_factory,
        locks: SlotLockRegistry,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime],
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.dispatcher = dispatcher
        self.clock = clock

    # Create

    async def create(
        self,
        request: ReservationCreate,
        rules: BookingRules,
        staff: Optional[StaffContext] = None,
    ) -> Reservation:
        phone = normalize_phone(request.phone)
        slot = parse_slot(request.studio, request.date, request.start_time, request.end_time)
        check_duration(slot, rules)
        now = self.clock()
        check_date_window(slot.date, now.date(), rules)
        total = compute_total(request.rate_per_hour, slot)

        async with atomic(self.session_factory, self.locks, [slot_key(slot.studio, slot.date)]) as store:
            await self._ensure_available(store, slot, rules.booking_buffer)

            reservation = Reservation(
                id=uuid.uuid4(),
                phone_number=phone,
                name=request.name,
                email=request.email,
                studio=slot.studio,
                date=slot.date,
                start_minute=slot.start,
                end_minute=slot.end,
                session_type=request.session_type,
                session_details=request.session_details or request.session_type,
                notes=request.notes,
                total_amount=total,
                status=ReservationStatus.CONFIRMED,
                confirmed_at=now,
                created_by_staff_id=staff.id if staff else None,
                created_at=now,
                updated_at=now,
            )
            store.db.add(reservation)
            store.add_reminders(initial_batch(reservation.id, slot.start_at, now), now)

        logger.info(
            "Reservation created",
            reservation_id=str(reservation.id),
            studio=slot.studio.value,
            date=slot.date.isoformat(),
            start=reservation.start_time,
            end=reservation.end_time,
            phone=phone[-4:],
        )
        await self._publish(EventKind.CREATED, reservation)
        return reservation

    # Modify

    async def modify(
        self,
        reservation_id: UUID,
        request: ReservationModify,
        rules: BookingRules,
        staff: Optional[StaffContext] = None,
    ) -> Reservation:
        phone = digits_only(request.phone)
        current = await self._peek(reservation_id)

        for _ in range(MAX_RELOCK_ATTEMPTS):
            old_key = slot_key(current.studio, current.date)
            new_key = slot_key(request.studio or current.studio, request.date or current.date)

            async with atomic(self.session_factory, self.locks, [old_key, new_key]) as store:
                reservation = await self._owned(store, reservation_id, phone, staff)
                if slot_key(reservation.studio, reservation.date) != old_key:
                    # Moved by someone else before we got the lock
                    current = reservation
                    continue

                if reservation.status in IMMUTABLE_STATUSES:
                    raise ImmutableStatus(
                        f"Cannot modify a {reservation.status.value} booking",
                        status=reservation.status.value,
                    )
                now = self.clock()
                if reservation.start_at - now < MODIFICATION_NOTICE:
                    raise ModificationWindowClosed(starts_at=reservation.start_at.isoformat())

                slot = parse_slot(
                    request.studio or reservation.studio,
                    request.date or reservation.date,
                    request.start_time or reservation.start_time,
                    request.end_time or reservation.end_time,
                )
                check_duration(slot, rules)
                check_date_window(slot.date, now.date(), rules)
                await self._ensure_available(store, slot, rules.booking_buffer, exclude_id=reservation.id)

                previous_start = reservation.start_at
                reservation.studio = slot.studio
                reservation.date = slot.date
                reservation.start_minute = slot.start
                reservation.end_minute = slot.end
                for field in ("name", "email", "session_type", "session_details", "notes"):
                    value = getattr(request, field)
                    if value is not None:
                        setattr(reservation, field, value)
                total = compute_total(request.rate_per_hour, slot)
                if total is not None:
                    reservation.total_amount = total
                reservation.updated_at = now

                if slot.start_at != previous_start:
                    await store.cancel_pending_reminders(reservation.id)
                    store.add_reminders(rescheduled_pair(reservation.id, slot.start_at), now)
            break
        else:
            raise StoreUnavailable("Booking kept moving while waiting for its lock")

        logger.info(
            "Reservation modified",
            reservation_id=str(reservation.id),
            studio=reservation.studio.value,
            date=reservation.date.isoformat(),
            start=reservation.start_time,
            end=reservation.end_time,
            by_staff=staff is not None,
        )
        await self._publish(EventKind.MODIFIED, reservation)
        return reservation

    # Cancel

    async def cancel(
        self,
        reservation_id: UUID,
        request: ReservationCancel,
        staff: Optional[StaffContext] = None,
    ) -> Reservation:
        phone = digits_only(request.phone)
        current = await self._peek(reservation_id)

        for _ in range(MAX_RELOCK_ATTEMPTS):
            key = slot_key(current.studio, current.date)

            async with atomic(self.session_factory, self.locks, [key]) as store:
                reservation = await self._owned(store, reservation_id, phone, staff)
                if slot_key(reservation.studio, reservation.date) != key:
                    current = reservation
                    continue

                if reservation.status not in ACTIVE_STATUSES:
                    raise ImmutableStatus(
                        f"Cannot cancel a {reservation.status.value} booking",
                        status=reservation.status.value,
                    )
                now = self.clock()
                if reservation.start_at < now:
                    raise BookingAlreadyElapsed(started_at=reservation.start_at.isoformat())

                reservation.status = ReservationStatus.CANCELLED
                reservation.cancelled_at = now
                reservation.cancelled_by = "staff" if staff else "customer"
                reservation.cancellation_reason = request.reason or (
                    "Cancelled by staff" if staff else "Cancelled by user"
                )
                reservation.updated_at = now
                await store.cancel_pending_reminders(reservation.id)
            break
        else:
            raise StoreUnavailable("Booking kept moving while waiting for its lock")

        logger.info(
            "Reservation cancelled",
            reservation_id=str(reservation.id),
            by_staff=staff is not None,
        )
        await self._publish(EventKind.CANCELLED, reservation)
        return reservation

    # Reads

    async def get(self, reservation_id: UUID) -> Optional[Reservation]:
        async with read_only(self.session_factory) as store:
            return await store.get_reservation(reservation_id)

    async def list_for_phone(self, phone: str, upcoming_only: bool = True) -> List[Reservation]:
        phone = normalize_phone(phone)
        from_date = self.clock().date() if upcoming_only else None
        async with read_only(self.session_factory) as store:
            return await store.list_for_phone(phone, from_date)

    async def list_availability(
        self,
        studio: Studio,
        day: date,
        rules: BookingRules,
        hourly: bool = False,
    ) -> List[Interval]:
        """Open sub-intervals between opening and closing time.

        Reservations are widened by the buffer, blackouts are not. For today
        the part of the day that has already passed is dropped.

        With ``hourly`` the day is cut into one-hour slots from opening time
        and every slot touching a busy interval is dropped. For today a slot
        is kept while its end is still ahead.
        """
        now = self.clock()
        if day < now.date():
            return []
        minute_now = now.hour * 60 + now.minute if day == now.date() else None

        async with read_only(self.session_factory) as store:
            reserved = await store.active_intervals(studio, day)
            blocked = await store.blackout_intervals(studio, day)

        busy = [expand(start, end, rules.booking_buffer) for start, end in reserved] + blocked

        if hourly:
            chunks = free_chunks(hour_chunks((rules.open_minute, rules.close_minute)), busy)
            if minute_now is not None:
                chunks = [(start, end) for start, end in chunks if end > minute_now]
            return chunks

        open_minute = rules.open_minute
        if minute_now is not None:
            open_minute = max(open_minute, minute_now)
        if open_minute >= rules.close_minute:
            return []
        return subtract((open_minute, rules.close_minute), busy)

    # Internals

    async def _peek(self, reservation_id: UUID) -> Reservation:
        """Unlocked read, only used to learn which lock to take"""
        async with read_only(self.session_factory) as store:
            reservation = await store.get_reservation(reservation_id)
        if reservation is None:
            raise NotFoundOrForbidden(reservation_id=str(reservation_id))
        return reservation

    async def _owned(
        self,
        store: AvailabilityStore,
        reservation_id: UUID,
        phone: str,
        staff: Optional[StaffContext],
    ) -> Reservation:
        reservation = await store.get_reservation(reservation_id, for_update=True)
        if reservation is None:
            raise NotFoundOrForbidden(reservation_id=str(reservation_id))
        if staff is None and reservation.phone_number != phone:
            raise NotFoundOrForbidden(reservation_id=str(reservation_id))
        return reservation

    async def _ensure_available(
        self,
        store: AvailabilityStore,
        slot: RequestedSlot,
        buffer: int,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        query_start, query_end = expand(slot.start, slot.end, buffer)
        conflicts = await store.find_conflicts(slot.studio, slot.date, query_start, query_end, exclude_id)
        if conflicts:
            raise SlotUnavailable(
                reason="reserved",
                conflicts=[f"{r.start_time}-{r.end_time}" for r in conflicts],
            )

        blackouts = await store.find_blackouts(slot.studio, slot.date, slot.start, slot.end)
        if blackouts:
            raise SlotUnavailable(
                "This time slot is blocked",
                reason="blocked",
                conflicts=[f"{b.start_time}-{b.end_time}" for b in blackouts],
            )

    async def _publish(self, kind: EventKind, reservation: Reservation) -> None:
        event = ReservationEvent(kind, ReservationSnapshot.from_reservation(reservation))
        try:
            await self.dispatcher.publish(event)
        except Exception as e:
            logger.error(
                "Failed to publish reservation event",
                reservation_id=str(reservation.id),
                event_kind=kind.value,
                error=str(e),
            )
