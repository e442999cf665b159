"""Tests for calendar-day helpers."""

import pytest
from datetime import date, datetime

from finledger.dates import (
    FixedClock,
    add_months_clamped,
    apply_weekend_handling,
    is_weekend,
    month_bounds,
    to_date,
    to_date_string,
)
from finledger.models import WeekendHandling


class TestToDate:
    """Tests for date normalization."""

    def test_accepts_date(self):
        """Test that dates pass through."""
        assert to_date(date(2024, 3, 1)) == date(2024, 3, 1)

    def test_drops_time_of_day(self):
        """Test that datetimes collapse to their day."""
        assert to_date(datetime(2024, 3, 1, 23, 30)) == date(2024, 3, 1)

    def test_accepts_iso_strings(self):
        """Test ISO strings with and without a time part."""
        assert to_date("2024-03-01") == date(2024, 3, 1)
        assert to_date("2024-03-01T10:00:00.000Z") == date(2024, 3, 1)

    def test_rejects_garbage(self):
        """Test that malformed input is rejected."""
        with pytest.raises(ValueError, match="Invalid date"):
            to_date("yesterday")
        with pytest.raises(ValueError, match="cannot be empty"):
            to_date("  ")

    def test_to_date_string(self):
        """Test the canonical output format."""
        assert to_date_string(datetime(2024, 3, 1, 8)) == "2024-03-01"


class TestMonthArithmetic:
    """Tests for month stepping."""

    def test_month_bounds_leap_year(self):
        """Test month bounds in a leap February."""
        assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_clamps_to_month_length(self):
        """Test that day 31 clamps to shorter months."""
        assert add_months_clamped(date(2024, 1, 31), 1, 31) == date(2024, 2, 29)
        assert add_months_clamped(date(2024, 1, 31), 3, 31) == date(2024, 4, 30)

    def test_anchor_restores_long_months(self):
        """Test that the anchor day is used again after a short month."""
        assert add_months_clamped(date(2024, 2, 29), 1, 31) == date(2024, 3, 31)

    def test_leap_day_yearly(self):
        """Test a leap-day anchor in a common year."""
        assert add_months_clamped(date(2024, 2, 29), 12, 29) == date(2025, 2, 28)


class TestWeekendHandling:
    """Tests for moving dates off the weekend."""

    def test_is_weekend(self):
        """Test weekend detection."""
        assert is_weekend(date(2024, 1, 6)) is True  # Saturday
        assert is_weekend(date(2024, 1, 8)) is False  # Monday

    def test_after(self):
        """Test that AFTER moves to the following Monday."""
        assert apply_weekend_handling(date(2024, 1, 6), WeekendHandling.AFTER) == date(2024, 1, 8)
        assert apply_weekend_handling(date(2024, 1, 7), WeekendHandling.AFTER) == date(2024, 1, 8)

    def test_before(self):
        """Test that BEFORE moves to the previous Friday."""
        assert apply_weekend_handling(date(2024, 1, 6), WeekendHandling.BEFORE) == date(2024, 1, 5)
        assert apply_weekend_handling(date(2024, 1, 7), WeekendHandling.BEFORE) == date(2024, 1, 5)

    def test_none_and_weekdays_unchanged(self):
        """Test that NONE and weekdays are left alone."""
        assert apply_weekend_handling(date(2024, 1, 6), WeekendHandling.NONE) == date(2024, 1, 6)
        assert apply_weekend_handling(date(2024, 1, 9), "AFTER") == date(2024, 1, 9)


class TestFixedClock:
    """Tests for the frozen clock."""

    def test_today_and_advance(self):
        """Test FixedClock.advance."""
        clock = FixedClock("2024-01-31")
        assert clock.today() == date(2024, 1, 31)
        assert clock.advance() == date(2024, 2, 1)
        assert clock.today() == date(2024, 2, 1)
