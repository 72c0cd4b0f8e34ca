"""
Booking rules: operating hours, peak-hour policy and duration limits.

Built from application settings; services receive a BookingRules
instance so policy can be swapped per restaurant or per test.
"""

from dataclasses import dataclass, field
from typing import Optional

from core.config import Settings, settings as default_settings
from core.utils_time import MINUTES_PER_DAY, hour_of, to_minutes
from domain.errors import PeakHourDurationExceeded


@dataclass(frozen=True)
class OperatingHours:
    """
    Opening and closing wall-clock times.

    A closing time earlier than the opening time means the restaurant
    closes after midnight. Equal times mean open around the clock.
    """
    opening_time: str
    closing_time: str

    @property
    def span_minutes(self) -> int:
        span = (to_minutes(self.closing_time) - to_minutes(self.opening_time)) % MINUTES_PER_DAY
        return span or MINUTES_PER_DAY

    @property
    def crosses_midnight(self) -> bool:
        return to_minutes(self.closing_time) < to_minutes(self.opening_time)

    def minutes_since_opening(self, value: str) -> int:
        return (to_minutes(value) - to_minutes(self.opening_time)) % MINUTES_PER_DAY

    def is_open_at(self, value: str) -> bool:
        """Check if the restaurant is open at this time (closing is exclusive)."""
        return self.minutes_since_opening(value) < self.span_minutes

    def is_time_range_valid(self, start_time: str, end_time: str) -> bool:
        """
        Check that [start, end) lies inside opening hours.

        The start must fall in [opening, closing); the end may coincide
        with closing. Both ends are measured from the opening time, which
        handles post-midnight closing the same way slot generation does.
        """
        start = self.minutes_since_opening(start_time)
        if start >= self.span_minutes:
            return False
        duration = (to_minutes(end_time) - to_minutes(start_time)) % MINUTES_PER_DAY
        return start + duration <= self.span_minutes


@dataclass(frozen=True)
class PeakHourPolicy:
    """Cap on booking length during the evening rush."""
    start_hour: int = 18
    end_hour: int = 21
    max_duration_minutes: int = 90

    def is_peak(self, start_time: str) -> bool:
        return self.start_hour <= hour_of(start_time) < self.end_hour

    def adjust_duration(self, start_time: str, duration_minutes: int) -> int:
        """Effective duration for a booking starting at start_time."""
        if self.is_peak(start_time):
            return min(duration_minutes, self.max_duration_minutes)
        return duration_minutes

    def enforce(self, start_time: str, duration_minutes: int) -> None:
        """
        Reject bookings the peak cap would shorten.

        Raises:
            PeakHourDurationExceeded: If the effective duration differs from the request
        """
        if self.adjust_duration(start_time, duration_minutes) != duration_minutes:
            raise PeakHourDurationExceeded(duration_minutes, self.max_duration_minutes)


@dataclass(frozen=True)
class BookingRules:
    """Booking rules and constraints."""
    # Time slot settings
    slot_interval_minutes: int = 30
    default_duration_minutes: int = 90
    min_duration_minutes: int = 30
    max_duration_minutes: int = 240

    peak_hours: PeakHourPolicy = field(default_factory=PeakHourPolicy)

    # Availability output
    suggested_tables_limit: int = 3
    alternative_tables_limit: int = 5

    # Waitlist heuristics
    waitlist_minutes_per_position: int = 30
    waitlist_response_minutes: int = 30

    # Recurring reservations
    recurring_lookahead_days: int = 30
    upcoming_occurrences_limit: int = 10

    def is_valid_duration(self, duration_minutes: int) -> bool:
        return self.min_duration_minutes <= duration_minutes <= self.max_duration_minutes


def get_booking_rules(app_settings: Optional[Settings] = None) -> BookingRules:
    """Build booking rules from application settings."""
    s = app_settings or default_settings
    return BookingRules(
        slot_interval_minutes=s.slot_interval_minutes,
        default_duration_minutes=s.default_duration_minutes,
        min_duration_minutes=s.min_duration_minutes,
        max_duration_minutes=s.max_duration_minutes,
        peak_hours=PeakHourPolicy(
            start_hour=s.peak_hours_start,
            end_hour=s.peak_hours_end,
            max_duration_minutes=s.peak_hours_max_duration,
        ),
        suggested_tables_limit=s.suggested_tables_limit,
        alternative_tables_limit=s.alternative_tables_limit,
        waitlist_minutes_per_position=s.waitlist_minutes_per_position,
        waitlist_response_minutes=s.waitlist_response_minutes,
        recurring_lookahead_days=s.recurring_lookahead_days,
        upcoming_occurrences_limit=s.upcoming_occurrences_limit,
    )
