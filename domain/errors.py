"""Typed operational errors raised by the reservation engine."""

from typing import Any, Dict, Optional


class BookingError(Exception):
    """
    Base class for expected booking failures.

    Carries an HTTP-equivalent status code and structured details so a
    request layer can map it to a response without string matching.
    """

    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class InvalidTimeFormat(BookingError, ValueError):
    """Raised when a time is not a valid "HH:MM" string."""

    def __init__(self, value: Any):
        super().__init__(f"Invalid time format: {value!r}. Use HH:MM", {"value": value})


class InvalidDateFormat(BookingError, ValueError):
    """Raised when a date is not a valid "YYYY-MM-DD" string."""

    def __init__(self, value: Any):
        super().__init__(f"Invalid date format: {value!r}. Use YYYY-MM-DD", {"value": value})


class RestaurantInactive(BookingError):
    """Raised when booking against a deactivated restaurant."""

    def __init__(self, restaurant_id: int):
        super().__init__("Restaurant is not accepting reservations", {"restaurant_id": restaurant_id})


class OutsideOperatingHours(BookingError):
    """Raised when the requested window is not inside opening hours."""

    def __init__(self, start_time: str, end_time: str, opening_time: str, closing_time: str):
        super().__init__(
            f"Reservation time {start_time}-{end_time} is outside operating hours "
            f"({opening_time} - {closing_time})",
            {
                "start_time": start_time,
                "end_time": end_time,
                "opening_time": opening_time,
                "closing_time": closing_time,
            },
        )


class PeakHourDurationExceeded(BookingError):
    """Raised when a peak-hour booking is longer than the peak cap."""

    def __init__(self, requested_minutes: int, max_minutes: int):
        super().__init__(
            f"During peak hours, maximum reservation duration is {max_minutes} minutes",
            {"requested_minutes": requested_minutes, "max_minutes": max_minutes},
        )


class CapacityMismatch(BookingError):
    """Raised when the party size does not fit an explicitly chosen table."""

    def __init__(self, table_number: str, party_size: int, min_capacity: int, capacity: int):
        super().__init__(
            f"Table {table_number} cannot accommodate party of {party_size} "
            f"(seats {min_capacity}-{capacity})",
            {
                "table_number": table_number,
                "party_size": party_size,
                "min_capacity": min_capacity,
                "capacity": capacity,
            },
        )


class TableNotInRestaurant(BookingError):
    """Raised when a table id belongs to another restaurant."""

    def __init__(self, table_id: int, restaurant_id: int):
        super().__init__(
            "Table does not belong to this restaurant",
            {"table_id": table_id, "restaurant_id": restaurant_id},
        )


class ReservationNotInRestaurant(BookingError):
    """Raised when a reservation id belongs to another restaurant."""

    def __init__(self, reservation_id: int, restaurant_id: int):
        super().__init__(
            "Reservation does not belong to this restaurant",
            {"reservation_id": reservation_id, "restaurant_id": restaurant_id},
        )


class DuplicateTableNumber(BookingError):
    """Raised when a table number is already used in the restaurant."""

    status_code = 409

    def __init__(self, table_number: str):
        super().__init__(f"Table number {table_number} already exists", {"table_number": table_number})


class TableConflict(BookingError):
    """Raised when an explicitly chosen table is taken for the window."""

    status_code = 409

    def __init__(self, table_id: int, message: str = "Table is not available for the requested time slot"):
        super().__init__(message, {"table_id": table_id})


class NoCapacity(BookingError):
    """Raised when no table can take the party for the window."""

    status_code = 409

    def __init__(self, party_size: int, alternatives: Optional[list] = None):
        super().__init__(
            "No tables available for the requested time and party size",
            {"party_size": party_size, "suggest_waitlist": True, "alternatives": alternatives or []},
        )

    @property
    def suggest_waitlist(self) -> bool:
        return True


class InvalidStateTransition(BookingError):
    """Raised when a lifecycle transition is not legal from the current state."""

    def __init__(self, entity: str, current: Any, target: Any, message: Optional[str] = None):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            message or f"{entity} cannot move from {current_value} to {target_value}",
            {"entity": entity, "current": current_value, "target": target_value},
        )
        self.current = current
        self.target = target


class InvalidRecurrence(BookingError):
    """Raised when a recurrence rule is missing or has an invalid anchor."""

    def __init__(self, message: str):
        super().__init__(message)


class NotFound(BookingError):
    """Raised when an entity id is unknown."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class PersistenceError(BookingError):
    """Opaque wrapper for unexpected storage failures."""

    status_code = 500

    def __init__(self, operation: str):
        super().__init__(f"Internal error while trying to {operation}", {"operation": operation})
