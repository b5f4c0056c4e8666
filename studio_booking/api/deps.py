"""Shared dependencies for the API routers.

Engine objects are process singletons built on first use; tests replace them
through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from studio_booking.config import settings
from studio_booking.database import SessionLocal
from studio_booking.engine.blackouts import BlackoutService
from studio_booking.engine.clock import LocalClock
from studio_booking.engine.locks import SlotLockRegistry
from studio_booking.engine.reservations import ReservationEngine
from studio_booking.engine.rules import BookingRules, SettingsProvider
from studio_booking.notifications.dispatcher import CeleryDispatcher


def get_session_factory():
    return SessionLocal


@lru_cache()
def get_clock() -> LocalClock:
    return LocalClock(settings.local_timezone)


@lru_cache()
def get_lock_registry() -> SlotLockRegistry:
    return SlotLockRegistry(timeout=settings.lock_timeout_seconds)


@lru_cache()
def get_reservation_engine() -> ReservationEngine:
    session_factory = get_session_factory()
    return ReservationEngine(
        session_factory,
        get_lock_registry(),
        CeleryDispatcher(),
        get_clock(),
    )


@lru_cache()
def get_blackout_service() -> BlackoutService:
    return BlackoutService(get_session_factory(), get_lock_registry(), get_clock())


def get_settings_provider() -> SettingsProvider:
    return SettingsProvider()


async def get_rules(
    session_factory=Depends(get_session_factory),
    provider: SettingsProvider = Depends(get_settings_provider),
) -> BookingRules:
    """Fresh rules snapshot for every request.

    Uses its own short session so no transaction stays open while the
    engine takes the slot lock.
    """
    async with session_factory() as db:
        return await provider.load(db)
