"""Day-boundary arithmetic in a single reference timezone."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


class ReferenceCalendar:
    """Maps instants to calendar days in one fixed zone shared by all users."""

    def __init__(self, tz_name: str = "UTC") -> None:
        self.tz_name = tz_name
        self.tz = ZoneInfo(tz_name)

    def __repr__(self) -> str:
        return f"ReferenceCalendar({self.tz_name!r})"

    def day_of(self, instant: datetime) -> date:
        """Truncate an instant to its calendar day. Naive instants are read as UTC."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz).date()

    def today(self, now: datetime) -> date:
        """Reference day for a sweep run at ``now``."""
        return self.day_of(now)

    @staticmethod
    def days_between(a: date, b: date) -> int:
        """Signed whole days from ``a`` to ``b`` (``b - a``)."""
        return (b - a).days
