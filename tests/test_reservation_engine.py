"""Tests for the reservation engine"""

import asyncio
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from studio_booking.engine.errors import (
    BookingAlreadyElapsed,
    DateOutOfWindow,
    DurationOutOfRange,
    ImmutableStatus,
    InvalidPhone,
    MissingFields,
    ModificationWindowClosed,
    NotFoundOrForbidden,
    SlotUnavailable,
    StoreUnavailable,
)
from studio_booking.engine.locks import slot_key
from studio_booking.engine.rules import BookingRules
from studio_booking.engine.store import AvailabilityStore, read_only
from studio_booking.models.reminder import Reminder, ReminderKind, ReminderStatus
from studio_booking.models.reservation import Reservation, ReservationStatus, Studio
from studio_booking.notifications.events import EventKind
from studio_booking.schemas.auth import StaffContext
from studio_booking.schemas.blackout import BlackoutCreate
from studio_booking.schemas.reservation import ReservationCancel, ReservationCreate, ReservationModify

PHONE = "9876543210"
DAY = date(2025, 3, 10)


def booking(start="10:00", end="12:00", phone=PHONE, studio=Studio.A, day=DAY, **extra):
    return ReservationCreate(phone=phone, studio=studio, date=day, start_time=start, end_time=end, **extra)


@pytest.mark.asyncio
async def test_create_reservation(booking_engine, rules, dispatcher):
    """Test creating a confirmed reservation"""
    reservation = await booking_engine.create(booking(name="Asha", rate_per_hour=1500), rules)

    assert reservation.status == ReservationStatus.CONFIRMED
    assert reservation.studio == Studio.A
    assert reservation.start_time == "10:00"
    assert reservation.end_time == "12:00"
    assert reservation.total_amount == 3000
    assert reservation.created_by_staff_id is None

    assert len(dispatcher.events) == 1
    assert dispatcher.events[0].kind == EventKind.CREATED
    assert dispatcher.events[0].reservation.id == reservation.id


@pytest.mark.asyncio
async def test_create_normalizes_phone(booking_engine, rules):
    """Test phone numbers are stored as their digits"""
    reservation = await booking_engine.create(booking(phone="(987) 654-3210"), rules)
    assert reservation.phone_number == PHONE


@pytest.mark.asyncio
async def test_create_rejects_invalid_phone(booking_engine, rules, dispatcher):
    """Test phone numbers need exactly ten digits"""
    with pytest.raises(InvalidPhone):
        await booking_engine.create(booking(phone="12345"), rules)
    assert dispatcher.events == []


@pytest.mark.asyncio
async def test_phone_is_checked_before_missing_fields(booking_engine, rules):
    """Test an invalid phone is reported even when slot fields are missing"""
    with pytest.raises(InvalidPhone):
        await booking_engine.create(ReservationCreate(phone="123"), rules)


@pytest.mark.asyncio
async def test_create_requires_slot_fields(booking_engine, rules):
    """Test missing slot fields are listed"""
    with pytest.raises(MissingFields) as exc_info:
        await booking_engine.create(ReservationCreate(phone=PHONE, studio=Studio.A), rules)
    assert exc_info.value.detail["missing"] == ["date", "start_time", "end_time"]


@pytest.mark.asyncio
async def test_overlap_scenario_without_buffer(booking_engine, rules):
    """Test overlapping requests fail and touching ones succeed"""
    await booking_engine.create(booking("10:00", "12:00"), rules)

    with pytest.raises(SlotUnavailable):
        await booking_engine.create(booking("11:00", "13:00"), rules)

    touching = await booking_engine.create(booking("12:00", "13:00"), rules)
    assert touching.start_time == "12:00"


@pytest.mark.asyncio
async def test_overlap_scenario_with_buffer(booking_engine):
    """Test the buffer widens the new request on both sides"""
    rules = BookingRules(booking_buffer=15)
    await booking_engine.create(booking("10:00", "12:00"), rules)

    with pytest.raises(SlotUnavailable):
        await booking_engine.create(booking("12:00", "13:00"), rules)

    later = await booking_engine.create(booking("12:15", "13:15"), rules)
    assert later.start_time == "12:15"


@pytest.mark.asyncio
@pytest.mark.parametrize("buffer", [0, 10, 30])
async def test_buffer_boundary(booking_engine, buffer):
    """Test a start before end + buffer fails and a start at end + buffer succeeds"""
    rules = BookingRules(booking_buffer=buffer)
    await booking_engine.create(booking("10:00", "12:00"), rules)

    if buffer:
        too_early = f"12:{buffer - 1:02d}"
        with pytest.raises(SlotUnavailable):
            await booking_engine.create(booking(too_early, "14:00"), rules)

    exact = f"12:{buffer:02d}"
    reservation = await booking_engine.create(booking(exact, "14:00"), rules)
    assert reservation.start_time == exact


@pytest.mark.asyncio
async def test_other_studio_and_date_do_not_conflict(booking_engine, rules):
    """Test reservations only conflict within the same studio and date"""
    await booking_engine.create(booking(), rules)
    await booking_engine.create(booking(studio=Studio.B), rules)
    await booking_engine.create(booking(day=DAY + timedelta(days=1)), rules)


@pytest.mark.asyncio
async def test_cancelled_reservation_frees_slot(booking_engine, rules):
    """Test a cancelled reservation no longer blocks its slot"""
    first = await booking_engine.create(booking(), rules)
    await booking_engine.cancel(first.id, ReservationCancel(phone=PHONE))

    second = await booking_engine.create(booking(), rules)
    assert second.id != first.id


@pytest.mark.asyncio
async def test_blackout_blocks_reservation(booking_engine, blackout_service, rules):
    """Test a blackout makes the slot unavailable"""
    await blackout_service.create(
        BlackoutCreate(studio=Studio.A, date=DAY, start_time="11:00", end_time="12:00"),
        StaffContext(id="admin-1", role="admin"),
    )

    with pytest.raises(SlotUnavailable) as exc_info:
        await booking_engine.create(booking("10:00", "11:30"), rules)
    assert exc_info.value.detail["reason"] == "blocked"


@pytest.mark.asyncio
async def test_concurrent_creates_single_winner(booking_engine, rules, session_factory):
    """Test racing creates for overlapping slots produce exactly one reservation"""
    requests = [
        booking("10:00", "12:00"),
        booking("11:00", "13:00"),
        booking("09:00", "11:30"),
        booking("10:30", "11:30"),
        booking("10:59", "13:00"),
    ]
    results = await asyncio.gather(
        *(booking_engine.create(request, rules) for request in requests),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == len(requests) - 1
    assert all(isinstance(f, SlotUnavailable) for f in failures)

    async with read_only(session_factory) as store:
        assert len(await store.active_intervals(Studio.A, DAY)) == 1


async def queued(locks, key, count):
    """Wait until ``count`` tasks hold or wait for ``key``"""
    for _ in range(500):
        if locks.users(key) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"{count} tasks never queued on {key}")


@pytest.mark.asyncio
async def test_cancel_wins_over_queued_modify(booking_engine, rules, locks, session_factory):
    """Test a modify queued behind a cancel sees the cancellation and changes nothing"""
    reservation = await booking_engine.create(booking("10:00", "12:00"), rules)
    key = slot_key(Studio.A, DAY)

    async with locks.hold([key]):
        cancel = asyncio.create_task(booking_engine.cancel(reservation.id, ReservationCancel(phone=PHONE)))
        await queued(locks, key, 2)
        modify = asyncio.create_task(
            booking_engine.modify(
                reservation.id, ReservationModify(phone=PHONE, start_time="14:00", end_time="16:00"), rules
            )
        )
        await queued(locks, key, 3)

    results = await asyncio.gather(cancel, modify, return_exceptions=True)

    assert results[0].status == ReservationStatus.CANCELLED
    assert isinstance(results[1], ImmutableStatus)

    stored = await booking_engine.get(reservation.id)
    assert stored.status == ReservationStatus.CANCELLED
    assert (stored.start_time, stored.end_time) == ("10:00", "12:00")
    async with read_only(session_factory) as store:
        reminders = await store.reminders_for(reservation.id)
    assert not [r for r in reminders if r.status == ReminderStatus.PENDING]


@pytest.mark.asyncio
async def test_modify_and_create_race_for_same_slot(booking_engine, rules, session_factory):
    """Test a move and a create aimed at the same time produce one winner"""
    reservation = await booking_engine.create(booking("10:00", "12:00"), rules)

    results = await asyncio.gather(
        booking_engine.modify(
            reservation.id, ReservationModify(phone=PHONE, start_time="14:00", end_time="16:00"), rules
        ),
        booking_engine.create(booking("14:30", "15:30", phone="1112223333"), rules),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], SlotUnavailable)

    async with read_only(session_factory) as store:
        active = sorted(await store.active_intervals(Studio.A, DAY))
    assert len(active) == (2 if isinstance(results[0], Exception) else 1)
    assert all(first[1] <= second[0] for first, second in zip(active, active[1:]))


@pytest.mark.asyncio
async def test_concurrent_moves_follow_the_reservation(booking_engine, rules, locks):
    """Test a move queued behind another move relocks on the new key and completes"""
    reservation = await booking_engine.create(booking("10:00", "12:00"), rules)
    key = slot_key(Studio.A, DAY)

    async with locks.hold([key]):
        first = asyncio.create_task(
            booking_engine.modify(reservation.id, ReservationModify(phone=PHONE, studio=Studio.B), rules)
        )
        await queued(locks, key, 2)
        second = asyncio.create_task(
            booking_engine.modify(reservation.id, ReservationModify(phone=PHONE, studio=Studio.C), rules)
        )
        await queued(locks, key, 3)

    moved = await asyncio.gather(first, second)

    assert [r.studio for r in moved] == [Studio.B, Studio.C]
    assert (await booking_engine.get(reservation.id)).studio == Studio.C
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_store_failure_rolls_back(booking_engine, rules, locks, session_factory, monkeypatch):
    """Test a database error mid-transaction rolls back the reservation and its reminders"""
    original = AvailabilityStore.add_reminders

    def failing_add_reminders(self, drafts, created_at):
        original(self, drafts, created_at)
        raise OperationalError("INSERT INTO reminders", {}, Exception("disk I/O error"))

    monkeypatch.setattr(AvailabilityStore, "add_reminders", failing_add_reminders)

    with pytest.raises(StoreUnavailable):
        await booking_engine.create(booking("10:00", "12:00"), rules)

    async with session_factory() as db:
        assert (await db.execute(select(func.count()).select_from(Reservation))).scalar_one() == 0
        assert (await db.execute(select(func.count()).select_from(Reminder))).scalar_one() == 0
    assert len(locks) == 0

    monkeypatch.setattr(AvailabilityStore, "add_reminders", original)
    assert (await booking_engine.create(booking("10:00", "12:00"), rules)).status == ReservationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_concurrent_creates_on_disjoint_keys_all_succeed(booking_engine, rules):
    """Test racing creates for different studios and dates all succeed"""
    requests = [
        booking(studio=Studio.A),
        booking(studio=Studio.B),
        booking(studio=Studio.C),
        booking(day=DAY + timedelta(days=1)),
    ]
    results = await asyncio.gather(*(booking_engine.create(request, rules) for request in requests))
    assert len({r.id for r in results}) == 4


@pytest.mark.asyncio
@pytest.mark.parametrize("start,end,bound", [("10:00", "10:30", "min"), ("08:00", "17:00", "max")])
async def test_duration_bounds(booking_engine, rules, start, end, bound):
    """Test durations outside the configured range are rejected"""
    with pytest.raises(DurationOutOfRange) as exc_info:
        await booking_engine.create(booking(start, end), rules)
    assert exc_info.value.detail["bound"] == bound


@pytest.mark.asyncio
async def test_date_window(booking_engine, rules, clock):
    """Test today and dates beyond the advance window are rejected"""
    today = clock().date()

    with pytest.raises(DateOutOfWindow) as exc_info:
        await booking_engine.create(booking(day=today), rules)
    assert exc_info.value.detail["bound"] == "earliest"

    with pytest.raises(DateOutOfWindow) as exc_info:
        await booking_engine.create(booking(day=today + timedelta(days=31)), rules)
    assert exc_info.value.detail["bound"] == "latest"

    last_day = await booking_engine.create(booking(day=today + timedelta(days=30)), rules)
    assert last_day.date == today + timedelta(days=30)


@pytest.mark.asyncio
async def test_same_day_rejected_for_staff(booking_engine, rules, clock):
    """Test staff cannot book same-day either"""
    with pytest.raises(DateOutOfWindow):
        await booking_engine.create(booking(day=clock().date()), rules, StaffContext(id="staff-1"))


@pytest.mark.asyncio
async def test_create_schedules_reminders(booking_engine, rules, session_factory, clock):
    """Test a new reservation gets a sent confirmation and two pending reminders"""
    reservation = await booking_engine.create(booking(), rules)

    async with read_only(session_factory) as store:
        reminders = await store.reminders_for(reservation.id)

    by_kind = {r.kind: r for r in reminders}
    assert by_kind[ReminderKind.CONFIRMATION].status == ReminderStatus.SENT
    assert by_kind[ReminderKind.CONFIRMATION].sent_at == clock()
    assert by_kind[ReminderKind.DAY_BEFORE].scheduled_at == datetime(2025, 3, 9, 10, 0)
    assert by_kind[ReminderKind.HOUR_BEFORE].scheduled_at == datetime(2025, 3, 10, 9, 0)
    assert by_kind[ReminderKind.DAY_BEFORE].status == ReminderStatus.PENDING


@pytest.mark.asyncio
async def test_modify_moves_reservation(booking_engine, rules, dispatcher, session_factory):
    """Test moving a reservation to another slot"""
    reservation = await booking_engine.create(booking(), rules)

    modified = await booking_engine.modify(
        reservation.id,
        ReservationModify(phone=PHONE, studio=Studio.B, start_time="14:00", end_time="16:00"),
        rules,
    )

    assert modified.studio == Studio.B
    assert modified.date == DAY
    assert modified.start_time == "14:00"
    assert dispatcher.events[-1].kind == EventKind.MODIFIED

    async with read_only(session_factory) as store:
        reminders = await store.reminders_for(reservation.id)
        assert await store.active_intervals(Studio.A, DAY) == []

    pending = [r for r in reminders if r.status == ReminderStatus.PENDING]
    cancelled = [r for r in reminders if r.status == ReminderStatus.CANCELLED]
    assert len(pending) == 2
    assert len(cancelled) == 2
    assert {r.scheduled_at for r in pending} == {datetime(2025, 3, 9, 14, 0), datetime(2025, 3, 10, 13, 0)}


@pytest.mark.asyncio
async def test_modify_ignores_own_interval(booking_engine, rules):
    """Test a reservation can be extended over its own time"""
    reservation = await booking_engine.create(booking("10:00", "12:00"), rules)

    modified = await booking_engine.modify(
        reservation.id, ReservationModify(phone=PHONE, end_time="13:00"), rules
    )
    assert modified.start_time == "10:00"
    assert modified.end_time == "13:00"


@pytest.mark.asyncio
async def test_modify_details_keeps_reminders(booking_engine, rules, session_factory):
    """Test changing details without moving the start keeps the reminders"""
    reservation = await booking_engine.create(booking(), rules)
    await booking_engine.modify(reservation.id, ReservationModify(phone=PHONE, notes="Bring drums"), rules)

    async with read_only(session_factory) as store:
        reminders = await store.reminders_for(reservation.id)
    assert not [r for r in reminders if r.status == ReminderStatus.CANCELLED]


@pytest.mark.asyncio
async def test_modify_into_taken_slot(booking_engine, rules):
    """Test moving onto another reservation fails"""
    await booking_engine.create(booking("14:00", "16:00"), rules)
    reservation = await booking_engine.create(booking("10:00", "12:00"), rules)

    with pytest.raises(SlotUnavailable):
        await booking_engine.modify(
            reservation.id, ReservationModify(phone=PHONE, start_time="13:00", end_time="15:00"), rules
        )


@pytest.mark.asyncio
async def test_modify_wrong_phone(booking_engine, rules):
    """Test a different phone cannot modify the reservation"""
    reservation = await booking_engine.create(booking(), rules)

    with pytest.raises(NotFoundOrForbidden):
        await booking_engine.modify(reservation.id, ReservationModify(phone="9999999999"), rules)


@pytest.mark.asyncio
async def test_modify_window_closed(booking_engine, rules, clock):
    """Test modification within 24 hours of the start fails even for a far future target"""
    reservation = await booking_engine.create(booking(day=date(2025, 3, 2), start="08:00", end="10:00"), rules)

    with pytest.raises(ModificationWindowClosed):
        await booking_engine.modify(
            reservation.id,
            ReservationModify(phone=PHONE, date=date(2025, 3, 20)),
            rules,
            StaffContext(id="staff-1"),
        )


@pytest.mark.asyncio
async def test_modify_cancelled_reservation(booking_engine, rules):
    """Test a cancelled reservation cannot be modified"""
    reservation = await booking_engine.create(booking(), rules)
    await booking_engine.cancel(reservation.id, ReservationCancel(phone=PHONE))

    with pytest.raises(ImmutableStatus):
        await booking_engine.modify(reservation.id, ReservationModify(phone=PHONE, notes="x"), rules)


@pytest.mark.asyncio
async def test_modify_checks_new_duration(booking_engine, rules):
    """Test the new interval goes through the duration check"""
    reservation = await booking_engine.create(booking(), rules)

    with pytest.raises(DurationOutOfRange):
        await booking_engine.modify(reservation.id, ReservationModify(phone=PHONE, end_time="10:30"), rules)


@pytest.mark.asyncio
async def test_cancel_reservation(booking_engine, rules, dispatcher, session_factory):
    """Test cancelling a reservation"""
    reservation = await booking_engine.create(booking(), rules)

    cancelled = await booking_engine.cancel(reservation.id, ReservationCancel(phone=PHONE))

    assert cancelled.status == ReservationStatus.CANCELLED
    assert cancelled.cancelled_by == "customer"
    assert cancelled.cancellation_reason == "Cancelled by user"
    assert dispatcher.events[-1].kind == EventKind.CANCELLED

    async with read_only(session_factory) as store:
        reminders = await store.reminders_for(reservation.id)
    assert not [r for r in reminders if r.status == ReminderStatus.PENDING]


@pytest.mark.asyncio
async def test_staff_cancel_without_phone(booking_engine, rules):
    """Test staff can cancel any reservation"""
    reservation = await booking_engine.create(booking(), rules)

    cancelled = await booking_engine.cancel(
        reservation.id, ReservationCancel(reason="Studio flooded"), StaffContext(id="staff-1")
    )
    assert cancelled.cancelled_by == "staff"
    assert cancelled.cancellation_reason == "Studio flooded"


@pytest.mark.asyncio
async def test_cancel_twice(booking_engine, rules):
    """Test a cancelled reservation cannot be cancelled again"""
    reservation = await booking_engine.create(booking(), rules)
    await booking_engine.cancel(reservation.id, ReservationCancel(phone=PHONE))

    with pytest.raises(ImmutableStatus):
        await booking_engine.cancel(reservation.id, ReservationCancel(phone=PHONE))


@pytest.mark.asyncio
async def test_cancel_elapsed_reservation(booking_engine, rules, clock):
    """Test a reservation that already started cannot be cancelled"""
    reservation = await booking_engine.create(booking(), rules)
    clock.now = datetime(2025, 3, 10, 10, 30)

    with pytest.raises(BookingAlreadyElapsed):
        await booking_engine.cancel(reservation.id, ReservationCancel(phone=PHONE))


@pytest.mark.asyncio
async def test_cancel_unknown_reservation(booking_engine):
    """Test an unknown id is reported like a foreign one"""
    from uuid import uuid4

    with pytest.raises(NotFoundOrForbidden):
        await booking_engine.cancel(uuid4(), ReservationCancel(phone=PHONE))


@pytest.mark.asyncio
async def test_failing_dispatcher_does_not_undo_commit(session_factory, locks, clock, rules):
    """Test a failing notification leaves the reservation committed"""
    from studio_booking.engine.reservations import ReservationEngine

    class ExplodingDispatcher:
        async def publish(self, event):
            raise RuntimeError("calendar down")

    engine = ReservationEngine(session_factory, locks, ExplodingDispatcher(), clock)
    reservation = await engine.create(booking(), rules)

    assert (await engine.get(reservation.id)).status == ReservationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_list_for_phone(booking_engine, rules):
    """Test listing upcoming reservations for a phone"""
    first = await booking_engine.create(booking(), rules)
    second = await booking_engine.create(booking(day=DAY + timedelta(days=1)), rules)
    await booking_engine.create(booking(studio=Studio.B, phone="1112223333"), rules)
    await booking_engine.cancel(first.id, ReservationCancel(phone=PHONE))

    upcoming = await booking_engine.list_for_phone(PHONE)
    assert [r.id for r in upcoming] == [second.id]

    everything = await booking_engine.list_for_phone(PHONE, upcoming_only=False)
    assert {r.id for r in everything} == {first.id, second.id}


@pytest.mark.asyncio
async def test_list_availability(booking_engine, blackout_service, rules):
    """Test open intervals exclude reservations and blackouts"""
    await booking_engine.create(booking("10:00", "12:00"), rules)
    await blackout_service.create(
        BlackoutCreate(studio=Studio.A, date=DAY, start_time="15:00", end_time="16:00"),
        StaffContext(id="admin-1", role="admin"),
    )

    free = await booking_engine.list_availability(Studio.A, DAY, rules)
    assert free == [(480, 600), (720, 900), (960, 1320)]

    other_studio = await booking_engine.list_availability(Studio.B, DAY, rules)
    assert other_studio == [(480, 1320)]


@pytest.mark.asyncio
async def test_list_availability_with_buffer(booking_engine):
    """Test reservations are widened by the buffer in listings"""
    rules = BookingRules(booking_buffer=15)
    await booking_engine.create(booking("10:00", "12:00"), rules)

    free = await booking_engine.list_availability(Studio.A, DAY, rules)
    assert free == [(480, 585), (735, 1320)]


@pytest.mark.asyncio
async def test_list_availability_hourly(booking_engine, rules):
    """Test hourly listing splits free time into whole hours"""
    await booking_engine.create(booking("10:00", "12:00"), rules)

    free = await booking_engine.list_availability(Studio.A, DAY, BookingRules(default_close_time="14:00"), hourly=True)
    assert free == [(480, 540), (540, 600), (720, 780), (780, 840)]


@pytest.mark.asyncio
async def test_list_availability_hourly_stays_on_opening_grid(booking_engine):
    """Test hourly slots are cut from opening time and a buffered booking removes whole hours"""
    rules = BookingRules(booking_buffer=15, default_close_time="16:00")
    await booking_engine.create(booking("10:00", "12:00"), rules)

    free = await booking_engine.list_availability(Studio.A, DAY, rules, hourly=True)
    assert free == [(480, 540), (780, 840), (840, 900), (900, 960)]


@pytest.mark.asyncio
async def test_list_availability_hourly_blackout(booking_engine, blackout_service, rules):
    """Test hourly slots overlapping a blackout are dropped"""
    await blackout_service.create(
        BlackoutCreate(studio=Studio.A, date=DAY, start_time="09:30", end_time="10:00"),
        StaffContext(id="staff-1", role="staff"),
    )

    free = await booking_engine.list_availability(Studio.A, DAY, BookingRules(default_close_time="12:00"), hourly=True)
    assert free == [(480, 540), (600, 660), (660, 720)]


@pytest.mark.asyncio
async def test_list_availability_hourly_today(booking_engine, clock):
    """Test today's hourly slots are kept while their end is still ahead"""
    clock.now = datetime(2025, 3, 1, 9, 30)

    free = await booking_engine.list_availability(
        Studio.A, clock().date(), BookingRules(default_close_time="12:00"), hourly=True
    )
    assert free == [(540, 600), (600, 660), (660, 720)]


@pytest.mark.asyncio
async def test_list_availability_past_and_today(booking_engine, rules, clock):
    """Test past dates have no availability and today starts from now"""
    today = clock().date()

    assert await booking_engine.list_availability(Studio.A, today - timedelta(days=1), rules) == []
    assert await booking_engine.list_availability(Studio.A, today, rules) == [(540, 1320)]
