"""Reminder scheduling derived from a reservation's start time"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List
from uuid import UUID

from studio_booking.models.reminder import Reminder, ReminderKind, ReminderStatus

DAY_BEFORE = timedelta(hours=24)
HOUR_BEFORE = timedelta(hours=1)


@dataclass(frozen=True)
class ReminderDraft:
    reservation_id: UUID
    kind: ReminderKind
    scheduled_at: datetime
    status: ReminderStatus

    def to_model(self, created_at: datetime) -> Reminder:
        return Reminder(
            reservation_id=self.reservation_id,
            kind=self.kind,
            scheduled_at=self.scheduled_at,
            status=self.status,
            sent_at=self.scheduled_at if self.status == ReminderStatus.SENT else None,
            created_at=created_at,
        )


def rescheduled_pair(reservation_id: UUID, start_at: datetime) -> List[ReminderDraft]:
    """The 24h and 1h reminders for a start time. Past fire times are kept."""
    return [
        ReminderDraft(reservation_id, ReminderKind.DAY_BEFORE, start_at - DAY_BEFORE, ReminderStatus.PENDING),
        ReminderDraft(reservation_id, ReminderKind.HOUR_BEFORE, start_at - HOUR_BEFORE, ReminderStatus.PENDING),
    ]


def initial_batch(reservation_id: UUID, start_at: datetime, now: datetime) -> List[ReminderDraft]:
    """Confirmation (already sent) plus the 24h and 1h reminders"""
    confirmation = ReminderDraft(reservation_id, ReminderKind.CONFIRMATION, now, ReminderStatus.SENT)
    return [confirmation] + rescheduled_pair(reservation_id, start_at)
