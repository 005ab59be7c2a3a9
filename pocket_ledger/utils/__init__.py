"""Shared utilities."""

from pocket_ledger.utils.dates import (
    MONTH_FORMAT,
    add_months,
    clamp_day_to_month,
    month_key,
    parse_month,
    prev_month,
    to_local_date,
    today_in,
    utc_now,
    with_day_clamped,
)

__all__ = [
    "MONTH_FORMAT",
    "add_months",
    "clamp_day_to_month",
    "month_key",
    "parse_month",
    "prev_month",
    "to_local_date",
    "today_in",
    "utc_now",
    "with_day_clamped",
]
