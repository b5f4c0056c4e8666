"""WhatsApp messages through Twilio"""

import asyncio
from typing import Optional

from twilio.rest import Client as TwilioClient
import structlog

from studio_booking.notifications.events import EventKind, ReservationEvent, ReservationSnapshot

logger = structlog.get_logger()


def _when(reservation: ReservationSnapshot) -> str:
    return (
        f"{reservation.date.strftime('%A, %B %d')} "
        f"from {reservation.start_time} to {reservation.end_time}"
    )


def confirmation_message(reservation: ReservationSnapshot) -> str:
    greeting = f"Hi {reservation.name}! " if reservation.name else ""
    message = f"{greeting}Your booking at {reservation.studio.value} is confirmed. "
    message += f"{_when(reservation)}. "
    if reservation.total_amount is not None:
        message += f"Total: Rs. {reservation.total_amount}. "
    message += f"Booking ID: {str(reservation.id)[:8]}."
    return message


def modification_message(reservation: ReservationSnapshot) -> str:
    message = f"Your booking {str(reservation.id)[:8]} has been updated. "
    message += f"{reservation.studio.value}, {_when(reservation)}."
    return message


def cancellation_message(reservation: ReservationSnapshot) -> str:
    message = f"Your booking at {reservation.studio.value} on {_when(reservation)} has been cancelled."
    if reservation.cancellation_reason:
        message += f" Reason: {reservation.cancellation_reason}."
    return message


def reminder_message(reservation: ReservationSnapshot, hours: int) -> str:
    unit = "hour" if hours == 1 else "hours"
    message = f"Reminder: your session at {reservation.studio.value} starts in {hours} {unit}. "
    message += f"{_when(reservation)}. See you soon!"
    return message


MESSAGES = {
    EventKind.CREATED: confirmation_message,
    EventKind.MODIFIED: modification_message,
    EventKind.CANCELLED: cancellation_message,
}


class WhatsAppChannel:
    """Sends booking messages to the customer's WhatsApp number"""

    name = "whatsapp"

    def __init__(self, settings, client: Optional[TwilioClient] = None):
        self.settings = settings
        self.client = client or TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)

    def _address(self, phone: str) -> str:
        return f"whatsapp:{self.settings.whatsapp_country_code}{phone}"

    async def send(self, phone: str, body: str) -> str:
        message = await asyncio.to_thread(
            self.client.messages.create,
            body=body,
            from_=f"whatsapp:{self.settings.twilio_whatsapp_number}",
            to=self._address(phone),
        )
        logger.info("WhatsApp message sent", to=phone[-4:], message_sid=message.sid)
        return message.sid

    async def handle(self, event: ReservationEvent) -> None:
        build = MESSAGES[event.kind]
        await self.send(event.reservation.phone_number, build(event.reservation))
