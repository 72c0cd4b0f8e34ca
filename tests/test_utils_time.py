"""
Tests for the time utilities.
Covers HH:MM parsing, wrap-around arithmetic, interval overlap and slot enumeration.
"""

import random
from datetime import date, datetime

import pytest

from core.utils_time import (
    MINUTES_PER_DAY,
    TimeSlot,
    add_minutes,
    format_date,
    from_minutes,
    generate_slots,
    hour_of,
    normalize_time,
    parse_date,
    ranges_overlap,
    service_interval,
    to_minutes,
)
from domain.errors import InvalidDateFormat, InvalidTimeFormat


# ============================================================================
# Parsing and formatting
# ============================================================================

@pytest.mark.unit
class TestTimeParsing:
    """Tests for HH:MM <-> minutes conversion."""

    @pytest.mark.parametrize("value,expected", [
        ("00:00", 0),
        ("09:05", 545),
        ("9:05", 545),
        ("19:30", 1170),
        ("23:59", 1439),
    ])
    def test_to_minutes(self, value, expected):
        """Test valid times convert to minutes since midnight."""
        assert to_minutes(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "1230", "", "12:5", None, 1230])
    def test_to_minutes_rejects_malformed(self, value):
        """Test malformed times raise InvalidTimeFormat."""
        with pytest.raises(InvalidTimeFormat):
            to_minutes(value)

    def test_invalid_time_is_value_error(self):
        """Test InvalidTimeFormat can be caught as a ValueError."""
        with pytest.raises(ValueError):
            to_minutes("25:00")

    def test_from_minutes_wraps(self):
        """Test minutes past midnight wrap to the next day."""
        assert from_minutes(0) == "00:00"
        assert from_minutes(1170) == "19:30"
        assert from_minutes(MINUTES_PER_DAY + 30) == "00:30"

    def test_normalize_time_pads(self):
        """Test normalization produces zero-padded times."""
        assert normalize_time("9:00") == "09:00"
        assert normalize_time(" 18:30 ") == "18:30"

    def test_hour_of(self):
        """Test hour extraction."""
        assert hour_of("18:59") == 18
        assert hour_of("00:15") == 0


@pytest.mark.unit
class TestTimeArithmetic:
    """Tests for end-time computation."""

    def test_add_minutes(self):
        """Test adding a booking duration."""
        assert add_minutes("19:00", 90) == "20:30"

    def test_add_minutes_rolls_past_midnight(self):
        """Test end times roll over midnight silently."""
        assert add_minutes("23:30", 90) == "01:00"

    def test_service_interval_from_opening(self):
        """Test bookings after midnight sort after evening bookings."""
        assert service_interval("23:00", 60, "22:00") == (60, 120)
        assert service_interval("01:00", 60, "22:00") == (180, 240)

    def test_service_interval_default_midnight(self):
        """Test interval measured from midnight by default."""
        assert service_interval("19:00", 90) == (1140, 1230)


@pytest.mark.unit
class TestDates:
    """Tests for date parsing."""

    def test_parse_date_string(self):
        """Test ISO date strings parse."""
        assert parse_date("2030-06-14") == date(2030, 6, 14)

    def test_parse_date_passthrough(self):
        """Test date and datetime values are accepted."""
        assert parse_date(date(2030, 6, 14)) == date(2030, 6, 14)
        assert parse_date(datetime(2030, 6, 14, 19, 0)) == date(2030, 6, 14)

    @pytest.mark.parametrize("value", ["14.06.2030", "2030-02-30", "tomorrow", ""])
    def test_parse_date_rejects_malformed(self, value):
        """Test malformed dates raise InvalidDateFormat."""
        with pytest.raises(InvalidDateFormat):
            parse_date(value)

    def test_format_date(self):
        """Test dates format as YYYY-MM-DD."""
        assert format_date(date(2030, 1, 5)) == "2030-01-05"


# ============================================================================
# Interval overlap
# ============================================================================

@pytest.mark.unit
class TestRangesOverlap:
    """Tests for half-open interval overlap."""

    def test_overlapping(self):
        """Test [19:00, 20:30) overlaps [20:00, 21:30)."""
        assert ranges_overlap(1140, 1230, 1200, 1290)

    def test_touching_does_not_overlap(self):
        """Test back-to-back bookings do not conflict."""
        assert not ranges_overlap(600, 660, 660, 720)
        assert not ranges_overlap(660, 720, 600, 660)

    def test_containment(self):
        """Test an interval inside another overlaps."""
        assert ranges_overlap(600, 900, 700, 750)

    @pytest.mark.parametrize("seed", range(5))
    def test_matches_interval_arithmetic(self, seed):
        """Test random interval pairs against a minute-by-minute ground truth."""
        rng = random.Random(seed)
        for _ in range(200):
            s1 = rng.randrange(0, 1380)
            e1 = s1 + rng.randrange(1, 240)
            s2 = rng.randrange(0, 1380)
            e2 = s2 + rng.randrange(1, 240)
            shared = set(range(s1, e1)) & set(range(s2, e2))
            assert ranges_overlap(s1, e1, s2, e2) == bool(shared)
            assert ranges_overlap(s1, e1, s2, e2) == ranges_overlap(s2, e2, s1, e1)


# ============================================================================
# Slot generation
# ============================================================================

@pytest.mark.unit
class TestGenerateSlots:
    """Tests for slot enumeration across opening hours."""

    def test_boundary_example(self):
        """Test the last slot ends exactly at closing."""
        slots = list(generate_slots("10:00", "12:00", 60, 30))
        assert slots == [
            TimeSlot("10:00", "11:00"),
            TimeSlot("10:30", "11:30"),
            TimeSlot("11:00", "12:00"),
        ]

    def test_len_matches_iteration(self):
        """Test len() agrees with the number of slots produced."""
        slots = generate_slots("10:00", "22:00", 90, 30)
        assert len(slots) == len(list(slots)) == 22

    def test_restartable(self):
        """Test a slot range can be iterated twice."""
        slots = generate_slots("10:00", "12:00", 60)
        assert list(slots) == list(slots)

    def test_crosses_midnight(self):
        """Test closing after midnight extends the service day."""
        slots = list(generate_slots("22:00", "02:00", 60, 60))
        assert [s.start_time for s in slots] == ["22:00", "23:00", "00:00", "01:00"]
        assert slots[-1].end_time == "02:00"

    def test_duration_longer_than_opening(self):
        """Test no slots when the duration does not fit."""
        slots = generate_slots("10:00", "11:00", 90)
        assert list(slots) == []
        assert len(slots) == 0

    def test_rejects_non_positive_duration(self):
        """Test zero duration is rejected."""
        with pytest.raises(ValueError):
            generate_slots("10:00", "12:00", 0)
