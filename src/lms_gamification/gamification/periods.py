"""Leaderboard time windows.

Every window is a half-open date range ``[start, end)`` anchored on the
reference clock's calendar date. Weeks start on Sunday.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
ALL_TIME = "all_time"

PERIODS: tuple[str, ...] = (DAILY, WEEKLY, MONTHLY, ALL_TIME)

ALL_TIME_START = date(1970, 1, 1)


def _as_date(now: datetime | date) -> date:
    return now.date() if isinstance(now, datetime) else now


def get_sunday(now: datetime | date) -> date:
    """Most recent Sunday on or before ``now``."""
    d = _as_date(now)
    # date.weekday(): Monday=0 ... Sunday=6
    return d - timedelta(days=(d.weekday() + 1) % 7)


def first_of_next_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def period_window(period: str, now: datetime | date | None = None) -> tuple[date, date | None]:
    """Return ``(period_start, period_end)`` of the window containing ``now``.

    ``period_end`` is None for all_time. Raises ValueError for unknown periods.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = _as_date(now)

    if period == DAILY:
        return today, today + timedelta(days=1)
    if period == WEEKLY:
        start = get_sunday(today)
        return start, start + timedelta(days=7)
    if period == MONTHLY:
        start = today.replace(day=1)
        return start, first_of_next_month(start)
    if period == ALL_TIME:
        return ALL_TIME_START, None
    raise ValueError(f"Unknown period: {period}")
