"""Local wall-clock time for the studio"""

from datetime import datetime
from zoneinfo import ZoneInfo


class LocalClock:
    """Returns naive local datetimes, matching how reservations store time"""

    def __init__(self, timezone: str):
        self.zone = ZoneInfo(timezone)

    def __call__(self) -> datetime:
        return datetime.now(self.zone).replace(tzinfo=None)
