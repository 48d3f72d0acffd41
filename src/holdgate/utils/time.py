"""Time and calendar utilities."""

import calendar
from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def add_months(start: date, months: int) -> date:
    """
    Add calendar months to a date.

    Clamps to the last day of the target month, so Jan 31 + 1 month
    lands on Feb 28 (or 29).
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def whole_months_between(start: date, end: date) -> int:
    """Whole months from start to end; a partial trailing month does not count."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return months


def format_remaining(delta: timedelta) -> str:
    """Render a remaining duration as '3h 12m' or '45m'."""
    minutes = max(0, int(delta.total_seconds() // 60))
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"
