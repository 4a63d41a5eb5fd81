"""Leaderboard window boundaries."""

from datetime import date, datetime, timezone

import pytest

from lms_gamification.gamification.periods import (
    ALL_TIME_START,
    first_of_next_month,
    get_sunday,
    period_window,
)


class TestGetSunday:

    def test_sunday_returns_itself(self):
        assert get_sunday(date(2026, 3, 1)) == date(2026, 3, 1)

    def test_saturday_returns_previous_sunday(self):
        assert get_sunday(date(2026, 3, 7)) == date(2026, 3, 1)

    def test_monday_returns_previous_day(self):
        assert get_sunday(date(2026, 3, 2)) == date(2026, 3, 1)

    def test_accepts_datetime(self):
        assert get_sunday(datetime(2026, 3, 4, 23, 59, tzinfo=timezone.utc)) == date(2026, 3, 1)


class TestPeriodWindow:

    now = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)  # Wednesday

    def test_daily(self):
        assert period_window("daily", self.now) == (date(2026, 3, 4), date(2026, 3, 5))

    def test_weekly_starts_sunday_and_spans_seven_days(self):
        assert period_window("weekly", self.now) == (date(2026, 3, 1), date(2026, 3, 8))

    def test_monthly(self):
        assert period_window("monthly", self.now) == (date(2026, 3, 1), date(2026, 4, 1))

    def test_monthly_december_rolls_year(self):
        dec = datetime(2026, 12, 31, 23, 0, tzinfo=timezone.utc)
        assert period_window("monthly", dec) == (date(2026, 12, 1), date(2027, 1, 1))

    def test_all_time_has_no_end(self):
        assert period_window("all_time", self.now) == (ALL_TIME_START, None)

    def test_daily_at_month_end(self):
        end = datetime(2026, 2, 28, 8, 0, tzinfo=timezone.utc)
        assert period_window("daily", end) == (date(2026, 2, 28), date(2026, 3, 1))

    def test_unknown_period_rejected(self):
        with pytest.raises(ValueError, match="Unknown period"):
            period_window("yearly", self.now)


def test_first_of_next_month():
    assert first_of_next_month(date(2026, 1, 1)) == date(2026, 2, 1)
    assert first_of_next_month(date(2026, 12, 1)) == date(2027, 1, 1)
