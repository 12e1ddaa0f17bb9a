"""System clock adapter — implements Clock using the configured timezone."""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo


class SystemClock:
    """Wall-clock time in a fixed zone (defaults to settings.TIMEZONE)."""

    def __init__(self, timezone: str | None = None) -> None:
        if timezone is None:
            from homely.config import settings
            timezone = settings.TIMEZONE
        self._tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to one instant. Used by tests and one-off maintenance runs."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def advance_to(self, now: datetime) -> None:
        self._now = now
