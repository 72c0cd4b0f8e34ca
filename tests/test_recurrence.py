"""Tests for recurring-series date arithmetic."""
from datetime import date

import pytest

from core.recurrence import add_months, advance, align_to_pattern, clamp_day_of_month, roll_forward
from domain.enums import RecurrencePattern


MONDAY, FRIDAY = 0, 4


@pytest.mark.unit
class TestMonthClamping:
    """Tests for day-of-month clamping."""

    def test_clamp_to_short_month(self):
        """Test day 31 lands on the last day of shorter months."""
        assert clamp_day_of_month(2030, 2, 31) == date(2030, 2, 28)
        assert clamp_day_of_month(2028, 2, 31) == date(2028, 2, 29)
        assert clamp_day_of_month(2030, 4, 31) == date(2030, 4, 30)

    def test_add_months_crosses_year(self):
        """Test December rolls into January."""
        assert add_months(date(2030, 12, 15), 1, 15) == date(2031, 1, 15)

    def test_monthly_sequence_keeps_anchor(self):
        """Test Jan 31 -> Feb 28 -> Mar 31: the anchor survives short months."""
        jan = date(2030, 1, 31)
        feb = advance(jan, RecurrencePattern.MONTHLY, day_of_month=31)
        mar = advance(feb, RecurrencePattern.MONTHLY, day_of_month=31)
        assert feb == date(2030, 2, 28)
        assert mar == date(2030, 3, 31)


@pytest.mark.unit
class TestAdvance:
    """Tests for one recurrence step."""

    @pytest.mark.parametrize("pattern,expected", [
        (RecurrencePattern.DAILY, date(2030, 6, 15)),
        (RecurrencePattern.WEEKLY, date(2030, 6, 21)),
        (RecurrencePattern.BIWEEKLY, date(2030, 6, 28)),
        (RecurrencePattern.MONTHLY, date(2030, 7, 14)),
    ])
    def test_step(self, pattern, expected):
        """Test each pattern's step from Friday 2030-06-14."""
        assert advance(date(2030, 6, 14), pattern, FRIDAY, 14) == expected


@pytest.mark.unit
class TestAlignment:
    """Tests for aligning a start date to the pattern anchor."""

    def test_weekly_aligns_forward(self):
        """Test a Friday start with a Monday anchor moves to the next Monday."""
        assert align_to_pattern(date(2030, 6, 14), RecurrencePattern.WEEKLY, MONDAY) == date(2030, 6, 17)

    def test_weekly_already_aligned(self):
        """Test an aligned date is kept."""
        assert align_to_pattern(date(2030, 6, 14), RecurrencePattern.WEEKLY, FRIDAY) == date(2030, 6, 14)

    def test_monthly_anchor_passed_this_month(self):
        """Test a passed anchor day moves to next month."""
        assert align_to_pattern(date(2030, 6, 20), RecurrencePattern.MONTHLY, day_of_month=5) == date(2030, 7, 5)

    def test_daily_unchanged(self):
        """Test daily series need no alignment."""
        assert align_to_pattern(date(2030, 6, 14), RecurrencePattern.DAILY) == date(2030, 6, 14)


@pytest.mark.unit
class TestRollForward:
    """Tests for moving a cursor past a reference date."""

    def test_biweekly_keeps_phase(self):
        """Test a biweekly cursor only moves in 14-day steps."""
        cursor = date(2030, 6, 14)
        assert roll_forward(cursor, date(2030, 6, 20), RecurrencePattern.BIWEEKLY, FRIDAY) == date(2030, 6, 28)
        assert roll_forward(cursor, date(2030, 6, 28), RecurrencePattern.BIWEEKLY, FRIDAY) == date(2030, 6, 28)

    def test_cursor_after_reference(self):
        """Test a cursor already ahead of the reference date is kept."""
        cursor = date(2030, 6, 14)
        assert roll_forward(cursor, date(2030, 6, 1), RecurrencePattern.WEEKLY, FRIDAY) == cursor

    def test_monthly_clamped_roll(self):
        """Test monthly rolling through February with a day-31 anchor."""
        result = roll_forward(date(2030, 1, 31), date(2030, 2, 2), RecurrencePattern.MONTHLY, day_of_month=31)
        assert result == date(2030, 2, 28)
