"""Reservation lifecycle: which transitions are legal from which status."""

from typing import Dict, FrozenSet, Tuple

from .enums import ReservationStatus, ReservationTransition
from .errors import InvalidStateTransition


# transition -> (allowed source statuses, target status)
RESERVATION_TRANSITIONS: Dict[ReservationTransition, Tuple[FrozenSet[ReservationStatus], ReservationStatus]] = {
    ReservationTransition.CONFIRM: (
        frozenset({ReservationStatus.PENDING}),
        ReservationStatus.CONFIRMED,
    ),
    ReservationTransition.SEAT: (
        frozenset({ReservationStatus.CONFIRMED}),
        ReservationStatus.SEATED,
    ),
    ReservationTransition.COMPLETE: (
        frozenset({ReservationStatus.SEATED}),
        ReservationStatus.COMPLETED,
    ),
    ReservationTransition.CANCEL: (
        frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED}),
        ReservationStatus.CANCELLED,
    ),
    ReservationTransition.NO_SHOW: (
        frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED}),
        ReservationStatus.NO_SHOW,
    ),
}

# Statuses in which date, time, table or party size may still change
MODIFIABLE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})


def target_status(current: ReservationStatus, transition: ReservationTransition) -> ReservationStatus:
    """
    Resolve the status a transition leads to.

    Raises:
        InvalidStateTransition: If the transition is not legal from `current`
    """
    sources, target = RESERVATION_TRANSITIONS[transition]
    if ReservationStatus(current) not in sources:
        raise InvalidStateTransition("Reservation", ReservationStatus(current), target)
    return target


def can_transition(current: ReservationStatus, transition: ReservationTransition) -> bool:
    sources, _ = RESERVATION_TRANSITIONS[transition]
    return ReservationStatus(current) in sources
