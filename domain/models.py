"""Domain models using Pydantic v2 for the table reservation engine."""

from datetime import date, datetime
from typing import Annotated, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from core.utils_time import normalize_time, parse_date
from .enums import RecurrencePattern, ReservationStatus, WaitlistStatus


PHONE_PATTERN = r"^\+?[0-9][0-9\s\-()]{5,19}$"


# "HH:MM" normalized to zero-padded form; malformed input fails validation
TimeOfDay = Annotated[str, BeforeValidator(normalize_time)]

# "YYYY-MM-DD" string or date
CalendarDate = Annotated[date, BeforeValidator(parse_date)]


# ==================== Restaurant ====================

class RestaurantCreate(BaseModel):
    """Model for registering a restaurant."""

    name: str = Field(..., min_length=1, max_length=255)
    opening_time: TimeOfDay = Field(..., description="Opening time (HH:MM)")
    closing_time: TimeOfDay = Field(..., description="Closing time (HH:MM), earlier than opening means after midnight")
    timezone: str = Field(default="UTC", max_length=64)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    is_active: bool = True

    model_config = ConfigDict(str_strip_whitespace=True)


class RestaurantUpdate(BaseModel):
    """Model for updating a restaurant."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    opening_time: Optional[TimeOfDay] = None
    closing_time: Optional[TimeOfDay] = None
    timezone: Optional[str] = Field(None, max_length=64)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)


# ==================== Tables ====================

class TableCreate(BaseModel):
    """Model for adding a table to a restaurant."""

    table_number: str = Field(..., min_length=1, max_length=20)
    capacity: int = Field(..., ge=1, le=50, description="Largest party the table seats")
    min_capacity: int = Field(default=1, ge=1, le=50, description="Smallest party the table is given to")
    location: Optional[str] = Field(None, max_length=100)
    is_active: bool = True

    model_config = ConfigDict(str_strip_whitespace=True)

    @model_validator(mode="after")
    def validate_capacity_range(self) -> "TableCreate":
        if self.min_capacity > self.capacity:
            raise ValueError("Minimum capacity cannot exceed maximum capacity")
        return self


class TableUpdate(BaseModel):
    """Model for updating a table."""

    table_number: Optional[str] = Field(None, min_length=1, max_length=20)
    capacity: Optional[int] = Field(None, ge=1, le=50)
    min_capacity: Optional[int] = Field(None, ge=1, le=50)
    location: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class TableSummary(BaseModel):
    """Table as shown in availability results."""

    id: int
    table_number: str
    capacity: int
    min_capacity: int
    location: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SuggestedTable(TableSummary):
    """Best-fit table suggestion; fit_score 0 is a perfect fit."""

    fit_score: int


# ==================== Reservations ====================

class ReservationCreate(BaseModel):
    """Model for creating a new reservation."""

    restaurant_id: int
    table_id: Optional[int] = Field(None, description="Explicit table; auto-assigned when omitted")
    party_size: int = Field(..., ge=1, le=50)
    reservation_date: CalendarDate
    start_time: TimeOfDay = Field(..., description="Start time (HH:MM)")
    duration_minutes: int = Field(default=90, ge=30, le=240)
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str = Field(..., pattern=PHONE_PATTERN)
    customer_email: Optional[str] = Field(None, max_length=255)
    special_requests: Optional[str] = Field(None, max_length=1000)
    recurring_series_id: Optional[int] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class ReservationUpdate(BaseModel):
    """Model for updating an existing reservation."""

    table_id: Optional[int] = None
    party_size: Optional[int] = Field(None, ge=1, le=50)
    reservation_date: Optional[CalendarDate] = None
    start_time: Optional[TimeOfDay] = None
    duration_minutes: Optional[int] = Field(None, ge=30, le=240)
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    customer_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    customer_email: Optional[str] = Field(None, max_length=255)
    special_requests: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)

    @property
    def moves_booking(self) -> bool:
        """True if the change touches the table, the date or the time window."""
        return any(
            v is not None
            for v in (self.table_id, self.reservation_date, self.start_time, self.duration_minutes)
        )


class ReservationRecord(BaseModel):
    """Detached snapshot of a reservation, used in events and notifications."""

    id: int
    restaurant_id: int
    table_id: int
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    party_size: int
    reservation_date: date
    start_time: str
    end_time: str
    duration_minutes: int
    status: ReservationStatus
    special_requests: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    recurring_series_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def confirmation_number(self) -> str:
        return f"R-{self.id:08d}"


# ==================== Waitlist ====================

class WaitlistCreate(BaseModel):
    """Model for joining the waitlist."""

    restaurant_id: int
    party_size: int = Field(..., ge=1, le=50)
    requested_date: CalendarDate
    preferred_start_time: TimeOfDay
    preferred_end_time: TimeOfDay
    duration_minutes: int = Field(default=90, ge=30, le=240)
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str = Field(..., pattern=PHONE_PATTERN)
    customer_email: Optional[str] = Field(None, max_length=255)
    special_requests: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


class WaitlistUpdate(BaseModel):
    """Model for updating a waitlist entry."""

    party_size: Optional[int] = Field(None, ge=1, le=50)
    preferred_start_time: Optional[TimeOfDay] = None
    preferred_end_time: Optional[TimeOfDay] = None
    duration_minutes: Optional[int] = Field(None, ge=30, le=240)
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    customer_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    customer_email: Optional[str] = Field(None, max_length=255)
    special_requests: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


class WaitlistRecord(BaseModel):
    """Detached snapshot of a waitlist entry."""

    id: int
    restaurant_id: int
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    party_size: int
    requested_date: date
    preferred_start_time: str
    preferred_end_time: str
    duration_minutes: int
    status: WaitlistStatus
    notification_count: int
    last_notified_at: Optional[datetime] = None
    converted_reservation_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


# ==================== Recurring series ====================

class RecurringSeriesCreate(BaseModel):
    """Model for creating a recurring reservation series."""

    restaurant_id: int
    table_id: Optional[int] = None
    party_size: int = Field(..., ge=1, le=50)
    pattern: RecurrencePattern
    day_of_week: Optional[int] = Field(None, description="0 = Monday ... 6 = Sunday")
    day_of_month: Optional[int] = Field(None, description="1-31, clamped to month length")
    start_time: TimeOfDay
    duration_minutes: int = Field(default=90, ge=30, le=240)
    start_date: CalendarDate
    end_date: Optional[CalendarDate] = None
    max_occurrences: Optional[int] = Field(None, ge=1)
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str = Field(..., pattern=PHONE_PATTERN)
    customer_email: Optional[str] = Field(None, max_length=255)
    special_requests: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


class RecurringSeriesUpdate(BaseModel):
    """Model for changing the template of a recurring series."""

    table_id: Optional[int] = None
    party_size: Optional[int] = Field(None, ge=1, le=50)
    start_time: Optional[TimeOfDay] = None
    duration_minutes: Optional[int] = Field(None, ge=30, le=240)
    end_date: Optional[CalendarDate] = None
    max_occurrences: Optional[int] = Field(None, ge=1)
    special_requests: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


# ==================== Availability ====================

class AvailabilitySlot(BaseModel):
    """A bookable window with the tables free for all of it."""

    start_time: str
    end_time: str
    available_tables: List[TableSummary]


class AvailabilityResult(BaseModel):
    """Open slots for a date and party size."""

    restaurant_id: int
    reservation_date: date
    party_size: int
    duration_minutes: int
    available_slots: List[AvailabilitySlot] = Field(default_factory=list)
    suggested_tables: List[SuggestedTable] = Field(default_factory=list)

    def slot_at(self, start_time: str) -> Optional[AvailabilitySlot]:
        """The slot starting at start_time, if it has any free table."""
        start_time = normalize_time(start_time)
        for slot in self.available_slots:
            if slot.start_time == start_time:
                return slot
        return None
