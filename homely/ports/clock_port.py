"""Clock port — the single source of "now" for the core.

Recurrence, postponement validation and plan usage all ask the clock
instead of reading the system time, so tests can pin the date.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol


class Clock(Protocol):
    def today(self) -> date: ...

    def now(self) -> datetime: ...
