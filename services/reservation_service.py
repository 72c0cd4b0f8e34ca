"""
Reservation Service: the entry point for booking operations.

Composes the table catalog, booking ledger, availability engine and
waitlist. Ledger changes are committed first; notifications and waitlist
offers for freed tables follow, and their failures never undo a booking.
"""
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from core.booking_rules import BookingRules, get_booking_rules
from core.locks import KeyedLocks
from core.utils_time import parse_date
from db.models_sqlalchemy import Reservation
from db.repositories import Page
from domain.enums import EventType, ReservationStatus, ReservationTransition
from domain.errors import BookingError, PersistenceError
from domain.events import LedgerOutcome, reservation_event
from domain.models import AvailabilityResult, ReservationCreate, ReservationUpdate
from services.availability_cache import AvailabilityCache, get_availability_cache
from services.availability_service import AvailabilityService
from services.booking_ledger import BookingLedger
from services.notification_service import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    dispatch_events,
)
from services.table_catalog import TableCatalog
from services.waitlist_service import WaitlistService


logger = logging.getLogger(__name__)


class ReservationService:
    """Service for managing restaurant reservations."""

    def __init__(
        self,
        db_session: Session,
        notifier: Optional[NotificationDispatcher] = None,
        cache: Optional[AvailabilityCache] = None,
        rules: Optional[BookingRules] = None,
        table_locks: Optional[KeyedLocks] = None,
        waitlist_locks: Optional[KeyedLocks] = None,
    ):
        """
        Initialize ReservationService.

        Args:
            db_session: SQLAlchemy database session
            notifier: Notification dispatcher (log-only dispatcher when omitted)
            cache: Availability cache shared by the engine and the ledger
            rules: Booking rules (defaults to the application settings)
            table_locks: (table_id, date) lock registry for the ledger
            waitlist_locks: (restaurant_id, date) lock registry for the waitlist
        """
        self.db = db_session
        self.rules = rules or get_booking_rules()
        self.notifier = notifier or LoggingNotificationDispatcher(self.rules.waitlist_response_minutes)
        self.cache = cache

        self.catalog = TableCatalog(db_session, cache)
        self.ledger = BookingLedger(db_session, cache, self.rules, self.catalog, table_locks)
        self.availability = AvailabilityService(db_session, cache, self.rules, self.catalog)
        self.waitlist = WaitlistService(db_session, self.notifier, self.rules, waitlist_locks)

    # ==================== Queries ====================

    def get(self, reservation_id: int) -> Reservation:
        return self.ledger.get(reservation_id)

    def list_by_restaurant(
        self,
        restaurant_id: int,
        reservation_date=None,
        status: Optional[ReservationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        return self.ledger.list_by_restaurant(restaurant_id, reservation_date, status, page, limit)

    def get_availability(
        self,
        restaurant_id: int,
        reservation_date,
        party_size: int,
        duration_minutes: Optional[int] = None,
    ) -> AvailabilityResult:
        return self.availability.get_availability(restaurant_id, reservation_date, party_size, duration_minutes)

    # ==================== Booking ====================

    def create(self, data: ReservationCreate) -> Reservation:
        """
        Create a new reservation.

        Args:
            data: Reservation request

        Returns:
            The PENDING reservation

        Raises:
            BookingError: Any of the booking failures raised by the ledger
        """
        return self._finish(self.ledger.create(data))

    def update(self, reservation_id: int, changes: ReservationUpdate) -> Reservation:
        return self._finish(self.ledger.update(reservation_id, changes))

    def confirm(self, reservation_id: int, send_notification: bool = True) -> Reservation:
        return self._finish(self.ledger.confirm(reservation_id, send_notification))

    def seat(self, reservation_id: int) -> Reservation:
        return self._finish(self.ledger.mark_seated(reservation_id))

    def complete(self, reservation_id: int) -> Reservation:
        return self._finish(self.ledger.mark_completed(reservation_id))

    def cancel(self, reservation_id: int, reason: Optional[str] = None) -> Reservation:
        """
        Cancel a reservation and offer its table to the waitlist.

        Raises:
            NotFound: If the reservation does not exist
            InvalidStateTransition: If the reservation is not pending or confirmed
        """
        return self._finish(self.ledger.cancel(reservation_id, reason))

    def no_show(self, reservation_id: int) -> Reservation:
        return self._finish(self.ledger.mark_no_show(reservation_id))

    def transition(
        self,
        reservation_id: int,
        transition: ReservationTransition,
        reason: Optional[str] = None,
    ) -> Reservation:
        """Apply a lifecycle transition by name (confirm, seat, complete, cancel, no_show)."""
        return self._finish(self.ledger.transition(reservation_id, transition, reason))

    def send_reminders(self, reservation_date) -> int:
        """
        Remind every guest with a confirmed booking on the date.

        Returns:
            Number of reminders handed to the dispatcher
        """
        reservation_date = parse_date(reservation_date)
        confirmed = self.ledger.reservations.find_by_status(reservation_date, ReservationStatus.CONFIRMED)
        events = [reservation_event(EventType.RESERVATION_REMINDER, r) for r in confirmed]
        sent = dispatch_events(self.notifier, events)
        logger.info(f"Sent {sent} of {len(events)} reminders for {reservation_date}")
        return sent

    # ==================== Side effects ====================

    def _finish(self, outcome: LedgerOutcome) -> Reservation:
        dispatch_events(self.notifier, outcome.events)
        for slot in outcome.freed_slots:
            self._offer_to_waitlist(slot.restaurant_id, slot.reservation_date, slot.start_time, slot.end_time, slot.capacity)
        return outcome.reservation

    def _offer_to_waitlist(
        self,
        restaurant_id: int,
        reservation_date: date,
        start_time: str,
        end_time: str,
        capacity: int,
    ) -> None:
        try:
            self.waitlist.promote_on_freed_slot(restaurant_id, reservation_date, start_time, end_time, capacity)
        except PersistenceError:
            raise
        except BookingError as e:
            logger.warning(
                f"Waitlist promotion failed for restaurant {restaurant_id} on {reservation_date} "
                f"{start_time}-{end_time}: {e.message}"
            )

    def cancel_many(self, reservation_ids: List[int], reason: Optional[str] = None) -> List[Reservation]:
        """Cancel several reservations, skipping those that can no longer be cancelled."""
        cancelled = []
        for reservation_id in reservation_ids:
            try:
                cancelled.append(self.cancel(reservation_id, reason))
            except PersistenceError:
                raise
            except BookingError as e:
                logger.warning(f"Skipped cancelling reservation {reservation_id}: {e.message}")
        return cancelled


def get_reservation_service(
    db_session: Session,
    notifier: Optional[NotificationDispatcher] = None,
    cache: Optional[AvailabilityCache] = None,
    rules: Optional[BookingRules] = None,
) -> ReservationService:
    """
    Build a ReservationService wired to the shared availability cache.

    Args:
        db_session: SQLAlchemy database session
        notifier: Notification dispatcher
        cache: Availability cache (defaults to the process-wide one)
        rules: Booking rules (defaults to the application settings)

    Returns:
        ReservationService instance
    """
    return ReservationService(
        db_session,
        notifier=notifier,
        cache=cache if cache is not None else get_availability_cache(),
        rules=rules or get_booking_rules(),
    )
