"""
Time and date utilities for wall-clock reservation times.

Times are handled as zero-padded "HH:MM" strings and converted to
minutes since midnight for arithmetic. All arithmetic wraps modulo 24h.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator, Optional, Tuple, Union

import pytz

from domain.errors import InvalidDateFormat, InvalidTimeFormat


MINUTES_PER_DAY = 24 * 60

TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def to_minutes(value: str) -> int:
    """
    Parse an "HH:MM" string into minutes since midnight.

    Args:
        value: Wall-clock time, e.g. "19:30"

    Returns:
        Minutes since midnight (0-1439)

    Raises:
        InvalidTimeFormat: If the string is malformed or out of range
    """
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)

    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise InvalidTimeFormat(value)

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidTimeFormat(value)

    return hours * 60 + minutes


def from_minutes(total: int) -> str:
    """Format minutes since midnight as "HH:MM", wrapping past midnight."""
    total = total % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def normalize_time(value: str) -> str:
    """Return the canonical zero-padded form of an "HH:MM" string."""
    return from_minutes(to_minutes(value))


def add_minutes(value: str, minutes: int) -> str:
    """Add minutes to a wall-clock time, silently rolling past midnight."""
    return from_minutes(to_minutes(value) + minutes)


def hour_of(value: str) -> int:
    """Hour component of an "HH:MM" string."""
    return to_minutes(value) // 60


def ranges_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """
    Check whether two half-open intervals overlap.

    Touching endpoints do not overlap: [10:00, 11:00) and [11:00, 12:00)
    are disjoint.
    """
    return start1 < end2 and start2 < end1


def service_interval(start_time: str, duration_minutes: int, opening_time: str = "00:00") -> Tuple[int, int]:
    """
    Map a booking onto the restaurant's service day.

    Minutes are counted from the opening time, so a booking after midnight
    at a late-closing restaurant sorts after the evening ones of the same
    service date instead of wrapping back to the start of the day.

    Returns:
        Half-open (start, end) interval in minutes since opening
    """
    start = (to_minutes(start_time) - to_minutes(opening_time)) % MINUTES_PER_DAY
    return start, start + duration_minutes


@dataclass(frozen=True)
class TimeSlot:
    """A candidate [start, end) window."""
    start_time: str
    end_time: str


class SlotRange:
    """
    Lazy, restartable enumeration of fixed-duration slots across opening hours.

    Starts at the opening time and steps by `interval` minutes, emitting a
    slot while start + duration fits before the closing time. A closing
    time earlier than the opening time means the restaurant closes after
    midnight; equal times mean open around the clock.
    """

    def __init__(self, opening_time: str, closing_time: str, duration_minutes: int, interval_minutes: int = 30):
        if duration_minutes <= 0 or interval_minutes <= 0:
            raise ValueError("duration and interval must be positive")

        self.opening = to_minutes(opening_time)
        closing = to_minutes(closing_time)
        self.adjusted_closing = closing + MINUTES_PER_DAY if closing <= self.opening else closing
        self.duration_minutes = duration_minutes
        self.interval_minutes = interval_minutes

    def __iter__(self) -> Iterator[TimeSlot]:
        start = self.opening
        while start + self.duration_minutes <= self.adjusted_closing:
            yield TimeSlot(from_minutes(start), from_minutes(start + self.duration_minutes))
            start += self.interval_minutes

    def __len__(self) -> int:
        span = self.adjusted_closing - self.opening - self.duration_minutes
        if span < 0:
            return 0
        return span // self.interval_minutes + 1


def generate_slots(
    opening_time: str,
    closing_time: str,
    duration_minutes: int,
    interval_minutes: int = 30,
) -> SlotRange:
    """Enumerate bookable slots; see SlotRange."""
    return SlotRange(opening_time, closing_time, duration_minutes, interval_minutes)


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a "YYYY-MM-DD" string into a date.

    Raises:
        InvalidDateFormat: If the string is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise InvalidDateFormat(value) from e


def format_date(value: date) -> str:
    """Format a date as "YYYY-MM-DD"."""
    return value.strftime("%Y-%m-%d")


def get_current_datetime(timezone_name: Optional[str] = None) -> datetime:
    """Get the current datetime in the given (or default) timezone."""
    if timezone_name is None:
        from core.config import settings
        timezone_name = settings.default_timezone
    return datetime.now(pytz.timezone(timezone_name))


def today(timezone_name: Optional[str] = None) -> date:
    """Current calendar date in the given (or default) timezone."""
    return get_current_datetime(timezone_name).date()


def utc_now() -> datetime:
    """Current UTC time as an aware datetime."""
    return datetime.now(pytz.utc)
