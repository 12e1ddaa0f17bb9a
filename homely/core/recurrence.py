"""Recurrence calculator — pure date arithmetic.

Derives the next due date of a recurring task from a base date and the
template's four-component interval. The components are applied one after the
other in the fixed order years -> months -> weeks -> days, each as a
calendar-aware addition on the running date. The order matters: adding a
year to Feb 29 clamps to Feb 28 *before* the months are added.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from homely.data.models import RecurrenceInterval, TaskTemplate


def has_interval(source: RecurrenceInterval | TaskTemplate | None) -> bool:
    """True when any interval component is greater than zero."""
    if source is None:
        return False
    if isinstance(source, TaskTemplate):
        source = source.interval
    return source.is_recurring


def next_due_date(base: date, interval: RecurrenceInterval) -> date:
    """Return base advanced by one interval.

    Example: 2024-01-01 + {years:1, months:2, weeks:1, days:3}
    -> 2025-01-01 -> 2025-03-01 -> 2025-03-08 -> 2025-03-11.
    """
    result = base
    if interval.years:
        result = result + relativedelta(years=interval.years)
    if interval.months:
        result = result + relativedelta(months=interval.months)
    if interval.weeks:
        result = result + timedelta(days=interval.weeks * 7)
    if interval.days:
        result = result + timedelta(days=interval.days)
    return result


def iter_due_dates(
    start: date,
    interval: RecurrenceInterval,
    until: date,
) -> Iterator[date]:
    """Yield successive due dates strictly after start, up to until inclusive.

    Each date is derived from the previous one, so month-end clamping carries
    forward (Jan 31 -> Feb 29 -> Mar 29 ...), matching repeated completion.
    Yields nothing for a non-recurring interval.
    """
    if not interval.is_recurring:
        return
    current = next_due_date(start, interval)
    while current <= until:
        yield current
        current = next_due_date(current, interval)
