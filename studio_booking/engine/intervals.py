"""Minute-of-day interval arithmetic.

All intervals are half-open ``[start, end)`` in minutes since local midnight.
"""

import re
from typing import Iterable, List, Tuple

MINUTES_PER_DAY = 1440

Interval = Tuple[int, int]

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def to_minutes(value: str, allow_end_of_day: bool = False) -> int:
    """Convert ``HH:MM`` (seconds are ignored) to minutes since midnight.

    ``24:00`` is only accepted when ``allow_end_of_day`` is set, for end times.
    """
    match = _TIME_RE.match(value.strip()) if value else None
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59:
        raise ValueError(f"Invalid time {value!r}")
    total = hours * 60 + minutes
    if total == MINUTES_PER_DAY and allow_end_of_day:
        return total
    if total >= MINUTES_PER_DAY:
        raise ValueError(f"Invalid time {value!r}")
    return total


def from_minutes(total: int) -> str:
    """Convert minutes since midnight back to zero-padded ``HH:MM``"""
    if total < 0 or total > MINUTES_PER_DAY:
        raise ValueError(f"Minute of day out of range: {total}")
    return f"{total // 60:02d}:{total % 60:02d}"


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open overlap test; touching endpoints do not overlap"""
    return a_start < b_end and a_end > b_start


def expand(start: int, end: int, buffer: int) -> Interval:
    """Grow an interval by ``buffer`` minutes on both sides, clamped to the day"""
    return max(0, start - buffer), min(MINUTES_PER_DAY, end + buffer)


def subtract(window: Interval, busy: Iterable[Interval]) -> List[Interval]:
    """Return the ordered parts of ``window`` not covered by any busy interval"""
    free: List[Interval] = []
    cursor, window_end = window

    for busy_start, busy_end in sorted(busy):
        if busy_end <= cursor:
            continue
        if busy_start >= window_end:
            break
        if busy_start > cursor:
            free.append((cursor, busy_start))
        cursor = max(cursor, busy_end)
        if cursor >= window_end:
            break

    if cursor < window_end:
        free.append((cursor, window_end))
    return free


def hour_chunks(window: Interval, step: int = 60) -> List[Interval]:
    """Whole ``step``-minute slots on the grid starting at the window's open.

    A trailing remainder shorter than ``step`` is dropped.
    """
    open_minute, close_minute = window
    return [(start, start + step) for start in range(open_minute, close_minute - step + 1, step)]


def free_chunks(chunks: Iterable[Interval], busy: Iterable[Interval]) -> List[Interval]:
    """Chunks that overlap none of the busy intervals"""
    busy = list(busy)
    return [
        (start, end)
        for start, end in chunks
        if not any(overlaps(start, end, busy_start, busy_end) for busy_start, busy_end in busy)
    ]
