"""Domain enums for the table reservation engine."""

from enum import Enum


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @classmethod
    def active(cls) -> tuple:
        """Statuses that hold a table."""
        return (cls.PENDING, cls.CONFIRMED, cls.SEATED)

    @property
    def is_terminal(self) -> bool:
        return self in (ReservationStatus.COMPLETED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW)


class ReservationTransition(str, Enum):
    """Lifecycle transitions a caller can request."""

    CONFIRM = "confirm"
    SEAT = "seat"
    COMPLETE = "complete"
    CANCEL = "cancel"
    NO_SHOW = "no_show"


class WaitlistStatus(str, Enum):
    """Waitlist entry status."""

    WAITING = "waiting"
    NOTIFIED = "notified"
    SEATED = "seated"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class RecurrencePattern(str, Enum):
    """How often a recurring reservation repeats."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class RecurringStatus(str, Enum):
    """Recurring series status."""

    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class EventType(str, Enum):
    """Outbound events produced by booking operations."""

    RESERVATION_CREATED = "reservation_created"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    SLOT_FREED = "slot_freed"
    WAITLIST_OFFER = "waitlist_offer"
    RESERVATION_REMINDER = "reservation_reminder"
