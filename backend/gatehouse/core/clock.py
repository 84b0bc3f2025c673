"""
Time source for expiry and calendar math.

All instants are timezone-aware UTC. "Today" for booking purposes is the
calendar date in the building's configured timezone, not the UTC date.
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo


@lru_cache()
def building_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class Clock:
    """Wall clock. Injected into services so tests can pin time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self, tz_name: str = "UTC") -> date:
        return self.now().astimezone(building_timezone(tz_name)).date()


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._now = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


_system_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency; overridden in tests."""
    return _system_clock
