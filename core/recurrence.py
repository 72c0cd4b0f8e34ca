"""
Pure date arithmetic for recurring reservations.

Day of week follows date.weekday(): Monday is 0, Sunday is 6.
"""
import calendar
from datetime import date, timedelta
from typing import Optional

from domain.enums import RecurrencePattern


def clamp_day_of_month(year: int, month: int, day_of_month: int) -> date:
    """Date for day_of_month in the given month, clamped to the month's last day."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last_day))


def add_months(current: date, months: int, day_of_month: int) -> date:
    """Move `months` calendar months ahead, landing on the clamped anchor day."""
    month_index = current.month - 1 + months
    year = current.year + month_index // 12
    month = month_index % 12 + 1
    return clamp_day_of_month(year, month, day_of_month)


def align_to_pattern(
    current: date,
    pattern: RecurrencePattern,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> date:
    """
    Earliest date on or after `current` that matches the pattern's anchor.

    Daily series have no anchor; weekly and biweekly series land on their
    weekday; monthly series land on their (clamped) day of month.
    """
    if pattern in (RecurrencePattern.WEEKLY, RecurrencePattern.BIWEEKLY) and day_of_week is not None:
        return current + timedelta(days=(day_of_week - current.weekday()) % 7)

    if pattern == RecurrencePattern.MONTHLY and day_of_month is not None:
        candidate = clamp_day_of_month(current.year, current.month, day_of_month)
        if candidate < current:
            candidate = add_months(current, 1, day_of_month)
        return candidate

    return current


def advance(
    current: date,
    pattern: RecurrencePattern,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> date:
    """
    One step of the recurrence: the occurrence following `current`.

    DAILY adds a day, WEEKLY seven, BIWEEKLY fourteen. MONTHLY moves to the
    next month on day_of_month clamped to that month's length, so an
    anchor of 31 yields Jan 31, Feb 28 (or 29), Mar 31.
    """
    if pattern == RecurrencePattern.DAILY:
        return current + timedelta(days=1)
    if pattern == RecurrencePattern.WEEKLY:
        return current + timedelta(days=7)
    if pattern == RecurrencePattern.BIWEEKLY:
        return current + timedelta(days=14)
    if pattern == RecurrencePattern.MONTHLY:
        return add_months(current, 1, day_of_month or current.day)
    raise ValueError(f"Unknown recurrence pattern: {pattern}")


def roll_forward(
    current: date,
    from_date: date,
    pattern: RecurrencePattern,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> date:
    """
    First aligned occurrence on or after both `current` and `from_date`.

    The cursor only ever moves forward in whole pattern steps, so a
    biweekly series keeps its fortnight phase across pauses.
    """
    cursor = align_to_pattern(current, pattern, day_of_week, day_of_month)
    while cursor < from_date:
        cursor = advance(cursor, pattern, day_of_week, day_of_month)
    return cursor
