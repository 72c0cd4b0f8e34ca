"""Tests for operating hours and the peak-hour policy."""
import pytest

from core.booking_rules import BookingRules, OperatingHours, PeakHourPolicy, get_booking_rules
from core.config import Settings
from domain.errors import PeakHourDurationExceeded


@pytest.mark.unit
class TestOperatingHours:
    """Tests for open/closed checks, including past-midnight closing."""

    def test_regular_hours(self):
        """Test a same-day restaurant."""
        hours = OperatingHours("10:00", "22:00")
        assert hours.is_open_at("10:00")
        assert hours.is_open_at("21:59")
        assert not hours.is_open_at("22:00")
        assert not hours.is_open_at("09:59")

    def test_midnight_wrap(self):
        """Test a restaurant open 22:00-02:00."""
        hours = OperatingHours("22:00", "02:00")
        assert hours.crosses_midnight
        assert hours.is_open_at("23:00")
        assert hours.is_open_at("01:00")
        assert not hours.is_open_at("10:00")
        assert not hours.is_open_at("02:00")

    def test_equal_times_mean_all_day(self):
        """Test identical opening and closing times."""
        hours = OperatingHours("00:00", "00:00")
        assert hours.span_minutes == 24 * 60
        assert hours.is_open_at("13:00")

    def test_range_may_end_at_closing(self):
        """Test the end of a booking may coincide with closing."""
        hours = OperatingHours("10:00", "22:00")
        assert hours.is_time_range_valid("20:30", "22:00")
        assert not hours.is_time_range_valid("21:00", "22:30")

    def test_range_must_start_inside(self):
        """Test a booking cannot start before opening or at closing."""
        hours = OperatingHours("10:00", "22:00")
        assert not hours.is_time_range_valid("09:30", "11:00")
        assert not hours.is_time_range_valid("22:00", "23:00")

    def test_range_across_midnight(self):
        """Test windows at a late-closing restaurant."""
        hours = OperatingHours("22:00", "02:00")
        assert hours.is_time_range_valid("23:30", "01:00")
        assert hours.is_time_range_valid("00:30", "02:00")
        assert not hours.is_time_range_valid("01:00", "02:30")
        assert not hours.is_time_range_valid("20:00", "23:00")


@pytest.mark.unit
class TestPeakHourPolicy:
    """Tests for the peak-hour duration cap."""

    def test_is_peak(self):
        """Test peak window is [18, 21)."""
        policy = PeakHourPolicy()
        assert policy.is_peak("18:00")
        assert policy.is_peak("20:59")
        assert not policy.is_peak("21:00")
        assert not policy.is_peak("17:30")

    def test_adjust_duration(self):
        """Test effective duration is capped only during peak hours."""
        policy = PeakHourPolicy(18, 21, 90)
        assert policy.adjust_duration("19:00", 120) == 90
        assert policy.adjust_duration("19:00", 60) == 60
        assert policy.adjust_duration("12:00", 180) == 180

    def test_enforce_rejects_instead_of_shrinking(self):
        """Test a long peak-hour booking is rejected."""
        policy = PeakHourPolicy(18, 21, 90)
        with pytest.raises(PeakHourDurationExceeded) as exc_info:
            policy.enforce("19:00", 120)
        assert exc_info.value.details["requested_minutes"] == 120
        assert exc_info.value.details["max_minutes"] == 90

    def test_enforce_allows_cap(self):
        """Test the cap itself is allowed."""
        PeakHourPolicy(18, 21, 90).enforce("19:00", 90)


@pytest.mark.unit
class TestBookingRules:
    """Tests for rules built from settings."""

    def test_from_settings(self):
        """Test rules mirror the configured values."""
        rules = get_booking_rules(Settings(peak_hours_start=17, peak_hours_max_duration=60))
        assert rules.peak_hours.start_hour == 17
        assert rules.peak_hours.max_duration_minutes == 60
        assert rules.slot_interval_minutes == 30

    def test_duration_bounds(self):
        """Test 30-240 minute bookings are valid."""
        rules = BookingRules()
        assert rules.is_valid_duration(30)
        assert rules.is_valid_duration(240)
        assert not rules.is_valid_duration(20)
        assert not rules.is_valid_duration(300)
