"""Outbound events returned by booking operations and dispatched after commit."""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from .enums import EventType
from .models import ReservationRecord, WaitlistRecord


@dataclass(frozen=True)
class FreedSlot:
    """A table window released by a cancellation or no-show."""
    restaurant_id: int
    reservation_date: date
    start_time: str
    end_time: str
    capacity: int


@dataclass
class DomainEvent:
    """Something that happened to a booking; carries detached snapshots only."""
    event_type: EventType
    reservation: Optional[ReservationRecord] = None
    waitlist_entry: Optional[WaitlistRecord] = None
    slot: Optional[FreedSlot] = None


@dataclass
class LedgerOutcome:
    """New reservation state plus the events to dispatch once it is committed."""
    reservation: object
    events: List[DomainEvent] = field(default_factory=list)

    @property
    def freed_slots(self) -> List[FreedSlot]:
        return [e.slot for e in self.events if e.event_type == EventType.SLOT_FREED and e.slot]


def reservation_event(event_type: EventType, reservation) -> DomainEvent:
    return DomainEvent(event_type=event_type, reservation=ReservationRecord.model_validate(reservation))


def slot_freed_event(reservation, capacity: int) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.SLOT_FREED,
        reservation=ReservationRecord.model_validate(reservation),
        slot=FreedSlot(
            restaurant_id=reservation.restaurant_id,
            reservation_date=reservation.reservation_date,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            capacity=capacity,
        ),
    )


def waitlist_offer_event(entry, slot: FreedSlot) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.WAITLIST_OFFER,
        waitlist_entry=WaitlistRecord.model_validate(entry),
        slot=slot,
    )
