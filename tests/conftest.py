"""Test configuration and fixtures"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime
from typing import List

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studio_booking.api.auth import create_access_token
from studio_booking.api.deps import (
    get_blackout_service,
    get_clock,
    get_reservation_engine,
    get_session_factory,
)
from studio_booking.database import Base, create_engine, get_db
from studio_booking.engine.blackouts import BlackoutService
from studio_booking.engine.locks import SlotLockRegistry
from studio_booking.engine.reservations import ReservationEngine
from studio_booking.engine.rules import BookingRules
from studio_booking.main import app
from studio_booking.notifications.events import ReservationEvent

# Saturday morning, local studio time
NOW = datetime(2025, 3, 1, 9, 0)


class FixedClock:
    """Clock that only moves when a test moves it"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingDispatcher:
    def __init__(self):
        self.events: List[ReservationEvent] = []

    async def publish(self, event: ReservationEvent) -> None:
        self.events.append(event)


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database, so concurrent sessions see each other"""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def locks():
    return SlotLockRegistry(timeout=5.0)


@pytest.fixture
def rules():
    return BookingRules()


@pytest.fixture
def booking_engine(session_factory, locks, dispatcher, clock):
    return ReservationEngine(session_factory, locks, dispatcher, clock)


@pytest.fixture
def blackout_service(session_factory, locks, clock):
    return BlackoutService(session_factory, locks, clock)


@pytest.fixture
async def client(session_factory, booking_engine, blackout_service, clock):
    """Create test client with the engine wired to the test database"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_reservation_engine] = lambda: booking_engine
    app.dependency_overrides[get_blackout_service] = lambda: blackout_service
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def staff_headers():
    return {"Authorization": f"Bearer {create_access_token('staff-1', 'staff')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token('admin-1', 'admin')}"}
