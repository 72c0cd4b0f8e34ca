"""Domain layer for the table reservation engine."""

from .enums import (
    ReservationStatus,
    ReservationTransition,
    WaitlistStatus,
    RecurrencePattern,
    RecurringStatus,
    EventType,
)
from .errors import (
    BookingError,
    InvalidTimeFormat,
    InvalidDateFormat,
    RestaurantInactive,
    OutsideOperatingHours,
    PeakHourDurationExceeded,
    CapacityMismatch,
    TableNotInRestaurant,
    ReservationNotInRestaurant,
    DuplicateTableNumber,
    TableConflict,
    NoCapacity,
    InvalidStateTransition,
    InvalidRecurrence,
    NotFound,
    PersistenceError,
)

__all__ = [
    # Enums
    "ReservationStatus",
    "ReservationTransition",
    "WaitlistStatus",
    "RecurrencePattern",
    "RecurringStatus",
    "EventType",
    # Errors
    "BookingError",
    "InvalidTimeFormat",
    "InvalidDateFormat",
    "RestaurantInactive",
    "OutsideOperatingHours",
    "PeakHourDurationExceeded",
    "CapacityMismatch",
    "TableNotInRestaurant",
    "ReservationNotInRestaurant",
    "DuplicateTableNumber",
    "TableConflict",
    "NoCapacity",
    "InvalidStateTransition",
    "InvalidRecurrence",
    "NotFound",
    "PersistenceError",
]
