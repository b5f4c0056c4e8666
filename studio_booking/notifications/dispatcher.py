"""Notification dispatcher: fans a committed reservation event out to channels"""

import asyncio
from typing import List, Optional, Protocol, Sequence

import structlog

from studio_booking.notifications.events import ReservationEvent

logger = structlog.get_logger()

PUBLISH_TASK = "publish_reservation_event"

# Short retry window for send_task when the broker is unreachable
SEND_RETRY_POLICY = {
    "max_retries": 2,
    "interval_start": 0,
    "interval_step": 0.2,
    "interval_max": 0.5,
}


class NotificationDispatcher(Protocol):
    async def publish(self, event: ReservationEvent) -> None:
        ...


class Channel(Protocol):
    name: str

    async def handle(self, event: ReservationEvent) -> None:
        ...


class CeleryDispatcher:
    """Queues committed events for the worker, which runs the channels"""

    def __init__(self, app=None):
        self.app = app

    async def publish(self, event: ReservationEvent) -> None:
        app = self.app
        if app is None:
            from studio_booking.jobs.celery_app import celery_app as app

        app.send_task(
            PUBLISH_TASK,
            args=[event.to_payload()],
            retry=True,
            retry_policy=SEND_RETRY_POLICY,
        )
        logger.info(
            "Reservation event queued",
            event_kind=event.kind.value,
            reservation_id=str(event.reservation.id),
        )


class ChannelDispatcher:
    """Calls every channel in turn. A failing or slow channel never stops the others."""

    def __init__(self, channels: Sequence[Channel] = (), timeout: Optional[float] = None):
        self.channels: List[Channel] = list(channels)
        self.timeout = timeout

    async def publish(self, event: ReservationEvent) -> None:
        for channel in self.channels:
            try:
                await asyncio.wait_for(channel.handle(event), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.error(
                    "Notification channel timed out",
                    channel=channel.name,
                    event_kind=event.kind.value,
                    reservation_id=str(event.reservation.id),
                    timeout=self.timeout,
                )
            except Exception as e:
                logger.error(
                    "Notification channel failed",
                    channel=channel.name,
                    event_kind=event.kind.value,
                    reservation_id=str(event.reservation.id),
                    error=str(e),
                )


def build_dispatcher(settings, session_factory) -> ChannelDispatcher:
    """Wire the channels whose credentials are configured"""
    channels: List[Channel] = []

    if settings.calendar_enabled:
        from studio_booking.notifications.calendar import CalendarChannel
        channels.append(CalendarChannel(settings, session_factory))
    else:
        logger.info("Calendar sync disabled - Google credentials not configured")

    if settings.twilio_enabled:
        from studio_booking.notifications.whatsapp import WhatsAppChannel
        channels.append(WhatsAppChannel(settings))
    else:
        logger.info("WhatsApp notifications disabled - Twilio credentials not configured")

    return ChannelDispatcher(channels, timeout=settings.notification_timeout_seconds)
