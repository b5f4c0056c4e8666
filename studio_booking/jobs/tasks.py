"""Background job tasks"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from studio_booking.jobs.celery_app import celery_app
from studio_booking.config import settings

logger = structlog.get_logger()


def run_async(coro):
    """Helper to run async functions in sync context"""
    return asyncio.run(coro)


@asynccontextmanager
async def task_sessions():
    """Session factory for one task run"""
    from studio_booking.database import create_engine

    # Each task run gets its own event loop, so no pooled connections
    engine = create_engine(settings.database_url, poolclass=NullPool)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@celery_app.task(name="publish_reservation_event")
def publish_reservation_event(payload: dict):
    """Run the notification channels for a committed reservation change"""
    from studio_booking.notifications.dispatcher import build_dispatcher
    from studio_booking.notifications.events import ReservationEvent

    event = ReservationEvent.from_payload(payload)
    logger.info(
        "Publishing reservation event",
        event_kind=event.kind.value,
        reservation_id=str(event.reservation.id),
    )

    async def _publish():
        async with task_sessions() as session_factory:
            await build_dispatcher(settings, session_factory).publish(event)

    run_async(_publish())
    return {"event": event.kind.value, "reservation_id": str(event.reservation.id)}


@celery_app.task(name="dispatch_due_reminders")
def dispatch_due_reminders():
    """Send the 24h and 1h reminders that are due"""
    if not settings.twilio_enabled:
        logger.info("Skipping reminders - Twilio credentials not configured")
        return {"sent": 0, "failed": 0, "cancelled": 0}

    logger.info("Dispatching due reminders")

    async def _dispatch():
        from studio_booking.engine.clock import LocalClock
        from studio_booking.notifications.reminders import send_due_reminders
        from studio_booking.notifications.whatsapp import WhatsAppChannel

        async with task_sessions() as session_factory:
            return await send_due_reminders(
                session_factory,
                WhatsAppChannel(settings),
                LocalClock(settings.local_timezone)(),
                limit=settings.reminder_batch_size,
            )

    return run_async(_dispatch())
