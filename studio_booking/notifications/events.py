"""Post-commit reservation events"""

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from studio_booking.models.reservation import Reservation, ReservationStatus, Studio


class EventKind(str, enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReservationSnapshot:
    """Immutable copy of a committed reservation, safe to hand to other tasks"""
    id: UUID
    studio: Studio
    date: date
    start_time: str
    end_time: str
    start_at: datetime
    end_at: datetime
    status: ReservationStatus
    phone_number: str
    name: Optional[str]
    email: Optional[str]
    session_type: Optional[str]
    session_details: Optional[str]
    total_amount: Optional[Decimal]
    google_event_id: Optional[str]
    cancellation_reason: Optional[str]

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ReservationSnapshot":
        return cls(
            id=reservation.id,
            studio=reservation.studio,
            date=reservation.date,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            start_at=reservation.start_at,
            end_at=reservation.start_at + timedelta(minutes=reservation.end_minute - reservation.start_minute),
            status=reservation.status,
            phone_number=reservation.phone_number,
            name=reservation.name,
            email=reservation.email,
            session_type=reservation.session_type,
            session_details=reservation.session_details,
            total_amount=reservation.total_amount,
            google_event_id=reservation.google_event_id,
            cancellation_reason=reservation.cancellation_reason,
        )

    def to_payload(self) -> dict:
        """JSON-safe form for the task queue"""
        return {
            "id": str(self.id),
            "studio": self.studio.value,
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "start_at": self.start_at.isoformat(),
            "end_at": self.end_at.isoformat(),
            "status": self.status.value,
            "phone_number": self.phone_number,
            "name": self.name,
            "email": self.email,
            "session_type": self.session_type,
            "session_details": self.session_details,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "google_event_id": self.google_event_id,
            "cancellation_reason": self.cancellation_reason,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "ReservationSnapshot":
        total = payload.get("total_amount")
        return cls(
            id=UUID(payload["id"]),
            studio=Studio(payload["studio"]),
            date=date.fromisoformat(payload["date"]),
            start_time=payload["start_time"],
            end_time=payload["end_time"],
            start_at=datetime.fromisoformat(payload["start_at"]),
            end_at=datetime.fromisoformat(payload["end_at"]),
            status=ReservationStatus(payload["status"]),
            phone_number=payload["phone_number"],
            name=payload.get("name"),
            email=payload.get("email"),
            session_type=payload.get("session_type"),
            session_details=payload.get("session_details"),
            total_amount=Decimal(total) if total is not None else None,
            google_event_id=payload.get("google_event_id"),
            cancellation_reason=payload.get("cancellation_reason"),
        )

    @property
    def display_name(self) -> str:
        return self.name or self.phone_number


@dataclass(frozen=True)
class ReservationEvent:
    kind: EventKind
    reservation: ReservationSnapshot

    def to_payload(self) -> dict:
        return {"kind": self.kind.value, "reservation": self.reservation.to_payload()}

    @classmethod
    def from_payload(cls, payload: dict) -> "ReservationEvent":
        return cls(EventKind(payload["kind"]), ReservationSnapshot.from_payload(payload["reservation"]))
