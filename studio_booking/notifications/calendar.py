"""Owner calendar sync through the Google Calendar API"""

import asyncio
from typing import Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy import update
import structlog

from studio_booking.models.reservation import Reservation
from studio_booking.notifications.events import EventKind, ReservationEvent, ReservationSnapshot

logger = structlog.get_logger()

SCOPES = ["https://www.googleapis.com/auth/calendar.events"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def event_body(reservation: ReservationSnapshot, timezone: str) -> dict:
    session_type = reservation.session_type or "Session"
    return {
        "summary": f"{reservation.studio.value} - {session_type} ({reservation.display_name})",
        "description": (
            f"Booking ID: {reservation.id}\n"
            f"WhatsApp: {reservation.phone_number}\n"
            f"Session Type: {session_type}\n"
            f"Details: {reservation.session_details or 'N/A'}"
        ),
        "start": {"dateTime": reservation.start_at.isoformat(), "timeZone": timezone},
        "end": {"dateTime": reservation.end_at.isoformat(), "timeZone": timezone},
    }


class CalendarChannel:
    """Mirrors reservations as events on the owner's calendar"""

    name = "calendar"

    def __init__(self, settings, session_factory, service=None):
        self.settings = settings
        self.session_factory = session_factory
        self._service = service

    @property
    def service(self):
        if self._service is None:
            credentials = Credentials(
                token=None,
                refresh_token=self.settings.google_refresh_token,
                token_uri=TOKEN_URI,
                client_id=self.settings.google_client_id,
                client_secret=self.settings.google_client_secret,
                scopes=SCOPES,
            )
            self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        return self._service

    @property
    def calendar_id(self) -> str:
        return self.settings.owner_calendar_id

    async def create_event(self, reservation: ReservationSnapshot) -> str:
        request = self.service.events().insert(
            calendarId=self.calendar_id,
            body=event_body(reservation, self.settings.local_timezone),
        )
        created = await asyncio.to_thread(request.execute)
        event_id = created["id"]
        await self._store_event_id(reservation, event_id)
        logger.info("Calendar event created", reservation_id=str(reservation.id), event_id=event_id)
        return event_id

    async def update_event(self, reservation: ReservationSnapshot) -> None:
        request = self.service.events().update(
            calendarId=self.calendar_id,
            eventId=reservation.google_event_id,
            body=event_body(reservation, self.settings.local_timezone),
        )
        await asyncio.to_thread(request.execute)
        logger.info("Calendar event updated", reservation_id=str(reservation.id))

    async def delete_event(self, event_id: str) -> None:
        request = self.service.events().delete(calendarId=self.calendar_id, eventId=event_id)
        try:
            await asyncio.to_thread(request.execute)
        except HttpError as e:
            # Already gone on the calendar side
            if e.resp.status not in (404, 410):
                raise
        logger.info("Calendar event deleted", event_id=event_id)

    async def _store_event_id(self, reservation: ReservationSnapshot, event_id: Optional[str]) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(Reservation)
                .where(Reservation.id == reservation.id)
                .values(google_event_id=event_id, updated_at=Reservation.updated_at)
            )
            await db.commit()

    async def handle(self, event: ReservationEvent) -> None:
        reservation = event.reservation
        if event.kind == EventKind.CREATED:
            await self.create_event(reservation)
        elif event.kind == EventKind.MODIFIED:
            if reservation.google_event_id:
                await self.update_event(reservation)
            else:
                await self.create_event(reservation)
        elif event.kind == EventKind.CANCELLED and reservation.google_event_id:
            await self.delete_event(reservation.google_event_id)
