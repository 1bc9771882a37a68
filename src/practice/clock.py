"""
Clock capability for calendar-day decisions.

Everything that needs "today" asks a Clock, so tests can move across day
boundaries without touching the system time.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


def canonical_date(day: date) -> str:
    """Timezone-stable string for a calendar date (YYYY-MM-DD)."""
    return day.isoformat()


def parse_date(raw: str) -> date:
    """
    Parse a persisted calendar date.

    Accepts plain ``YYYY-MM-DD`` as well as full ISO timestamps written by
    older clients, in which case only the date part is kept.
    """
    if len(raw) > 10:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    return date.fromisoformat(raw)


class Clock(Protocol):
    """Supplies the current instant and calendar day."""

    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall clock, optionally pinned to an IANA timezone."""

    def __init__(self, tz_name: str | None = None):
        self.tz = ZoneInfo(tz_name) if tz_name else None

    def now(self) -> datetime:
        if self.tz is None:
            return datetime.now().astimezone()
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Manually driven clock for tests and replays."""

    def __init__(self, current: date | datetime):
        self._now = _as_datetime(current)

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def advance(self, days: int = 1, hours: int = 0) -> None:
        """Move the clock forward."""
        self._now = self._now + timedelta(days=days, hours=hours)

    def set(self, current: date | datetime) -> None:
        """Jump to an arbitrary instant or day."""
        self._now = _as_datetime(current)
