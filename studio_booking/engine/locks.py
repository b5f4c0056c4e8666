"""Per-(studio, date) exclusive sections.

Every mutation of a studio's day runs while holding that day's lock, so the
overlap check of one operation always sees the committed result of the one
before it. Locks for different studios or dates never block each other.
"""

import asyncio
import zlib
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from studio_booking.engine.errors import StoreUnavailable

logger = structlog.get_logger()

SlotKey = Tuple[str, date]


def slot_key(studio, day: date) -> SlotKey:
    return (getattr(studio, "value", studio), day)


def advisory_lock_id(key: SlotKey) -> int:
    """Stable signed 64-bit id for pg_advisory_xact_lock"""
    studio, day = key
    return (zlib.crc32(studio.encode("utf-8")) & 0x7FFFFFFF) << 32 | day.toordinal()


class SlotLockRegistry:
    """In-process lock table keyed by (studio, date)"""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._locks: Dict[SlotKey, asyncio.Lock] = {}
        self._users: Dict[SlotKey, int] = {}

    def _checkout(self, key: SlotKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: SlotKey) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def users(self, key: SlotKey) -> int:
        """Tasks holding or waiting for ``key``"""
        return self._users.get(key, 0)

    @asynccontextmanager
    async def hold(self, keys: Iterable[SlotKey]):
        """Acquire every key in sorted order, release all on exit"""
        ordered: List[SlotKey] = sorted(set(keys))
        acquired: List[asyncio.Lock] = []
        locks = [self._checkout(key) for key in ordered]
        try:
            for key, lock in zip(ordered, locks):
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
                except asyncio.TimeoutError:
                    logger.error("Timed out waiting for slot lock", studio=key[0], date=str(key[1]))
                    raise StoreUnavailable("Timed out waiting for the slot lock")
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._checkin(key)


async def lock_in_database(db: AsyncSession, keys: Iterable[SlotKey]) -> None:
    """Take transaction-scoped advisory locks so other processes serialize too.

    Only PostgreSQL has advisory locks; on SQLite the write transaction itself
    is exclusive.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    for key in sorted(set(keys)):
        await db.execute(text("SELECT pg_advisory_xact_lock(:id)"), {"id": advisory_lock_id(key)})
