"""Delivery of scheduled reminders whose time has come"""

from datetime import datetime
from typing import Dict

from sqlalchemy import select
from sqlalchemy.orm import selectinload
import structlog

from studio_booking.models.reminder import Reminder, ReminderKind, ReminderStatus
from studio_booking.models.reservation import ReservationStatus
from studio_booking.notifications.events import ReservationSnapshot
from studio_booking.notifications.whatsapp import reminder_message

logger = structlog.get_logger()

HOURS_BEFORE = {
    ReminderKind.DAY_BEFORE: 24,
    ReminderKind.HOUR_BEFORE: 1,
}


async def send_due_reminders(session_factory, channel, now: datetime, limit: int = 100) -> Dict[str, int]:
    """Send pending reminders scheduled at or before ``now``.

    Reminders of reservations that are no longer confirmed, or that already
    started, are cancelled instead of sent. Each reminder is committed on its
    own so one failure does not hold back the rest.
    """
    counts = {"sent": 0, "failed": 0, "cancelled": 0}

    async with session_factory() as db:
        result = await db.execute(
            select(Reminder)
            .where(
                Reminder.status == ReminderStatus.PENDING,
                Reminder.scheduled_at <= now,
            )
            .options(selectinload(Reminder.reservation))
            .order_by(Reminder.scheduled_at)
            .limit(limit)
        )
        reminders = result.scalars().all()

        for reminder in reminders:
            reservation = reminder.reservation
            if reservation.status != ReservationStatus.CONFIRMED or reservation.start_at <= now:
                reminder.status = ReminderStatus.CANCELLED
                counts["cancelled"] += 1
                await db.commit()
                continue

            snapshot = ReservationSnapshot.from_reservation(reservation)
            try:
                await channel.send(
                    snapshot.phone_number,
                    reminder_message(snapshot, HOURS_BEFORE.get(reminder.kind, 1)),
                )
                reminder.status = ReminderStatus.SENT
                reminder.sent_at = now
                counts["sent"] += 1
            except Exception as e:
                logger.error(
                    "Failed to send reminder",
                    reminder_id=str(reminder.id),
                    reservation_id=str(reservation.id),
                    error=str(e),
                )
                reminder.status = ReminderStatus.FAILED
                reminder.error_message = str(e)
                counts["failed"] += 1
            await db.commit()

    logger.info("Reminder dispatch finished", **counts)
    return counts
