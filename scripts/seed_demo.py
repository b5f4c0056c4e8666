#!/usr/bin/env python3
"""
Seed script to create the booking tables, default rules and a demo blackout
"""

import asyncio
from datetime import timedelta


async def seed_demo_data():
    """Seed demo data for development"""
    from studio_booking.config import settings
    from studio_booking.database import SessionLocal, engine, Base
    from studio_booking.engine.blackouts import BlackoutService
    from studio_booking.engine.clock import LocalClock
    from studio_booking.engine.errors import BookingError
    from studio_booking.engine.locks import SlotLockRegistry
    from studio_booking.engine.rules import BookingRules, SettingsProvider
    from studio_booking.models import Studio
    from studio_booking.schemas.auth import StaffContext
    from studio_booking.schemas.blackout import BulkBlackoutCreate

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    provider = SettingsProvider()
    async with SessionLocal() as db:
        print("Writing default booking rules...")
        rules = await provider.save(db, BookingRules())
        await db.commit()
        print(f"Booking rules: {rules.model_dump()}")

    # Block Studio C for maintenance every Monday morning for the next month
    clock = LocalClock(settings.local_timezone)
    today = clock().date()
    mondays = [
        today + timedelta(days=offset)
        for offset in range(1, 31)
        if (today + timedelta(days=offset)).weekday() == 0
    ]
    service = BlackoutService(SessionLocal, SlotLockRegistry(), clock)
    try:
        result = await service.bulk_create(
            BulkBlackoutCreate(
                studio=Studio.C,
                dates=mondays,
                start_time="08:00",
                end_time="12:00",
                reason="Weekly maintenance",
            ),
            StaffContext(id="seed", role="admin"),
        )
        print(f"Blocked {result.created} maintenance slot(s) for {Studio.C.value}")
    except BookingError as e:
        print(f"Skipped maintenance blackouts: {e.message}")

    print("\n" + "=" * 50)
    print("Demo data seeded successfully!")
    print("=" * 50)


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
