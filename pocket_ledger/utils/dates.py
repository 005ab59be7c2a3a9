"""
Calendar helpers for the reporting time zone.

Every month bucket and every billing date is computed on the calendar of
one fixed reporting zone, never on UTC. Aware datetimes are converted into
that zone first; naive datetimes and plain dates are taken as already
local to it.
"""

import calendar
from datetime import date, datetime, timezone
from typing import Union
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

MONTH_FORMAT = "%Y-%m"

DateLike = Union[date, datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def today_in(zone: ZoneInfo) -> date:
    """Today's calendar date in the given zone."""
    return datetime.now(zone).date()


def to_local_date(value: DateLike, zone: ZoneInfo) -> date:
    """Calendar date of `value` as seen in the reporting zone."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(zone)
        return value.date()
    return value


def month_key(value: DateLike, zone: ZoneInfo) -> str:
    """Return the YYYY-MM reporting month of a date or instant."""
    return to_local_date(value, zone).strftime(MONTH_FORMAT)


def parse_month(month_str: str) -> date:
    """Return the first day of the given YYYY-MM month string."""
    try:
        return datetime.strptime(month_str, MONTH_FORMAT).date()
    except (TypeError, ValueError):
        raise ValueError(f"Invalid month: {month_str}")


def prev_month(month_str: str) -> str:
    d = parse_month(month_str)
    return (d - relativedelta(months=1)).strftime(MONTH_FORMAT)


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    """Clamp day to valid range for the given year/month."""
    max_day = calendar.monthrange(year, month)[1]
    return min(day, max_day)


def with_day_clamped(d: date, day: int) -> date:
    """Move `d` to `day` of its own month, clamped to the month end."""
    return d.replace(day=clamp_day_to_month(d.year, d.month, day))


def add_months(d: date, n: int) -> date:
    """Add n months to date d, clamping day to month end."""
    return d + relativedelta(months=n)
