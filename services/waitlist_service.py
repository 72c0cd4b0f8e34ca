"""
Waitlist: unmet demand served first come first served.

A freed table window is offered to the oldest compatible WAITING entry.
The offer is exactly-once per entry: the head is read and moved to
NOTIFIED under the (restaurant, date) lock with a status-guarded update.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.booking_rules import BookingRules, get_booking_rules
from core.locks import KeyedLocks, waitlist_locks
from core.utils_time import parse_date, utc_now
from db.models_sqlalchemy import Restaurant, WaitlistEntry
from db.repositories import Page, ReservationRepository, RestaurantRepository, WaitlistRepository
from domain.enums import WaitlistStatus
from domain.errors import (
    InvalidStateTransition,
    NotFound,
    OutsideOperatingHours,
    PersistenceError,
    ReservationNotInRestaurant,
    RestaurantInactive,
)
from domain.events import FreedSlot, waitlist_offer_event
from domain.models import WaitlistCreate, WaitlistUpdate
from services.notification_service import NotificationDispatcher, dispatch_events


logger = logging.getLogger(__name__)


class WaitlistService:
    """Service for managing the waitlist."""

    def __init__(
        self,
        db_session: Session,
        notifier: Optional[NotificationDispatcher] = None,
        rules: Optional[BookingRules] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        """
        Initialize the waitlist service.

        Args:
            db_session: SQLAlchemy database session
            notifier: Dispatcher for waitlist offers (offers are only logged when omitted)
            rules: Booking rules (defaults to the application settings)
            locks: (restaurant_id, date) lock registry, shared process-wide by default
        """
        self.db = db_session
        self.notifier = notifier
        self.rules = rules or get_booking_rules()
        self.locks = locks or waitlist_locks
        self.entries = WaitlistRepository(db_session)
        self.restaurants = RestaurantRepository(db_session)
        self.reservations = ReservationRepository(db_session)

    # ==================== Queue management ====================

    def _get_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.restaurants.get(restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant", restaurant_id)
        return restaurant

    def _validate_window(self, restaurant: Restaurant, start_time: str, end_time: str) -> None:
        if not restaurant.is_time_range_valid(start_time, end_time):
            raise OutsideOperatingHours(start_time, end_time, restaurant.opening_time, restaurant.closing_time)

    def enqueue(self, data: WaitlistCreate) -> WaitlistEntry:
        """
        Add a guest to the waitlist.

        Args:
            data: Waitlist request with the preferred window

        Returns:
            The WAITING entry

        Raises:
            NotFound: If the restaurant does not exist
            RestaurantInactive: If the restaurant is deactivated
            OutsideOperatingHours: If the preferred window is outside opening hours
        """
        restaurant = self._get_restaurant(data.restaurant_id)
        if not restaurant.is_active:
            raise RestaurantInactive(restaurant.id)
        self._validate_window(restaurant, data.preferred_start_time, data.preferred_end_time)

        entry = WaitlistEntry(**data.model_dump(), status=WaitlistStatus.WAITING.value)
        self.entries.add(entry)
        self._commit("add waitlist entry")
        self.db.refresh(entry)

        logger.info(
            f"Added waitlist entry {entry.id} for {entry.requested_date} "
            f"{entry.preferred_start_time}-{entry.preferred_end_time} (party of {entry.party_size})"
        )
        return entry

    def get(self, entry_id: int) -> WaitlistEntry:
        """
        Get a waitlist entry by ID.

        Raises:
            NotFound: If the entry does not exist
        """
        entry = self.entries.get(entry_id)
        if entry is None:
            raise NotFound("Waitlist entry", entry_id)
        return entry

    def list(
        self,
        restaurant_id: int,
        requested_date=None,
        status: Optional[WaitlistStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        if requested_date is not None:
            requested_date = parse_date(requested_date)
        return self.entries.list(restaurant_id, requested_date, status, page, limit)

    def update(self, entry_id: int, changes: WaitlistUpdate) -> WaitlistEntry:
        """
        Change an entry that is still waiting or holding an offer.

        Raises:
            NotFound: If the entry does not exist
            InvalidStateTransition: If the entry has left the queue
            OutsideOperatingHours: If the new preferred window is outside opening hours
        """
        entry = self.get(entry_id)
        if not entry.is_valid():
            raise InvalidStateTransition(
                "Waitlist entry",
                entry.status,
                entry.status,
                f"Waitlist entry cannot be modified in {entry.status} status",
            )

        values = changes.model_dump(exclude_unset=True, exclude_none=True)
        if "preferred_start_time" in values or "preferred_end_time" in values:
            self._validate_window(
                self._get_restaurant(entry.restaurant_id),
                values.get("preferred_start_time", entry.preferred_start_time),
                values.get("preferred_end_time", entry.preferred_end_time),
            )

        for key, value in values.items():
            setattr(entry, key, value)

        self._commit("update waitlist entry")
        self.db.refresh(entry)
        return entry

    def cancel(self, entry_id: int) -> WaitlistEntry:
        """WAITING/NOTIFIED -> CANCELLED."""
        entry = self.get(entry_id)
        current = WaitlistStatus(entry.status)
        if current not in (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED):
            raise InvalidStateTransition("Waitlist entry", current, WaitlistStatus.CANCELLED)
        return self._guarded_transition(entry, current, WaitlistStatus.CANCELLED)

    # ==================== Position ====================

    def position(self, entry_id: int) -> int:
        """
        1-based place in the queue for the entry's restaurant and date.

        Returns:
            Position, or -1 if the entry is not WAITING
        """
        entry = self.get(entry_id)
        if entry.status != WaitlistStatus.WAITING:
            return -1
        return self.entries.count_ahead(entry) + 1

    def estimated_wait_minutes(self, entry_id: int) -> Optional[int]:
        """Rough wait based on queue position, or None if not waiting."""
        position = self.position(entry_id)
        if position < 0:
            return None
        return position * self.rules.waitlist_minutes_per_position

    # ==================== Offers ====================

    def find_candidates_for_slot(
        self,
        restaurant_id: int,
        requested_date,
        start_time: str,
        end_time: str,
        max_party_size: int,
    ) -> List[WaitlistEntry]:
        """WAITING entries whose preferred window holds [start, end) and whose party fits, oldest first."""
        restaurant = self._get_restaurant(restaurant_id)
        return self.entries.find_waitlist_candidates(
            restaurant.hours,
            restaurant_id,
            parse_date(requested_date),
            start_time,
            end_time,
            max_party_size,
        )

    def notify(self, entry_id: int, slot: FreedSlot) -> WaitlistEntry:
        """
        Offer a slot to a specific WAITING entry.

        Raises:
            NotFound: If the entry does not exist
            InvalidStateTransition: If the entry is not WAITING
        """
        entry = self.get(entry_id)
        with self.locks.hold((entry.restaurant_id, entry.requested_date)):
            if not self.entries.transition_status(
                entry.id, WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED, notified_at=utc_now()
            ):
                self.db.rollback()
                self.db.refresh(entry)
                raise InvalidStateTransition("Waitlist entry", entry.status, WaitlistStatus.NOTIFIED)
            self._commit("notify waitlist entry")

        self.db.refresh(entry)
        self._send_offer(entry, slot)
        return entry

    def promote_on_freed_slot(
        self,
        restaurant_id: int,
        requested_date,
        start_time: str,
        end_time: str,
        freed_capacity: int,
    ) -> Optional[WaitlistEntry]:
        """
        Offer a freed table window to the oldest compatible WAITING entry.

        The offer does not book the table; the guest converts it with a
        separate reservation.

        Args:
            restaurant_id: Restaurant where the table was freed
            requested_date: Date of the freed window
            start_time: Window start (HH:MM)
            end_time: Window end (HH:MM)
            freed_capacity: Seats of the freed table

        Returns:
            The NOTIFIED entry, or None if nobody compatible is waiting
        """
        requested_date = parse_date(requested_date)
        restaurant = self._get_restaurant(restaurant_id)
        slot = FreedSlot(restaurant_id, requested_date, start_time, end_time, freed_capacity)

        promoted = None
        with self.locks.hold((restaurant_id, requested_date)):
            candidates = self.entries.find_waitlist_candidates(
                restaurant.hours, restaurant_id, requested_date, start_time, end_time, freed_capacity
            )
            for candidate in candidates:
                # Another process may have taken this entry since it was read
                if self.entries.transition_status(
                    candidate.id, WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED, notified_at=utc_now()
                ):
                    promoted = candidate
                    break
            if promoted is None:
                self.db.rollback()
                logger.debug(f"No waitlist candidate for restaurant {restaurant_id} on {requested_date} {start_time}")
                return None
            self._commit("promote waitlist entry")

        self.db.refresh(promoted)
        logger.info(f"Offered {start_time}-{end_time} on {requested_date} to waitlist entry {promoted.id}")
        self._send_offer(promoted, slot)
        return promoted

    def _send_offer(self, entry: WaitlistEntry, slot: FreedSlot) -> None:
        if self.notifier is None:
            return
        dispatch_events(self.notifier, [waitlist_offer_event(entry, slot)])

    # ==================== Resolution ====================

    def convert_to_reservation(self, entry_id: int, reservation_id: int) -> WaitlistEntry:
        """
        Link a WAITING or NOTIFIED entry to the reservation made for it.

        The SEATED status and the reservation link are written together.

        Raises:
            NotFound: If the entry or reservation does not exist
            ReservationNotInRestaurant: If the reservation is for another restaurant
            InvalidStateTransition: If the entry has left the queue
        """
        entry = self.get(entry_id)
        reservation = self.reservations.get(reservation_id)
        if reservation is None:
            raise NotFound("Reservation", reservation_id)
        if reservation.restaurant_id != entry.restaurant_id:
            raise ReservationNotInRestaurant(reservation_id, entry.restaurant_id)

        current = WaitlistStatus(entry.status)
        if current not in (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED):
            raise InvalidStateTransition("Waitlist entry", current, WaitlistStatus.SEATED)

        entry = self._guarded_transition(
            entry, current, WaitlistStatus.SEATED, converted_reservation_id=reservation_id
        )
        logger.info(f"Waitlist entry {entry.id} converted to reservation {reservation_id}")
        return entry

    def expire(self, entry_id: int) -> WaitlistEntry:
        """NOTIFIED -> EXPIRED, for offers that were not taken up in time."""
        entry = self.get(entry_id)
        return self._guarded_transition(entry, WaitlistStatus.NOTIFIED, WaitlistStatus.EXPIRED)

    def _guarded_transition(
        self,
        entry: WaitlistEntry,
        from_status: WaitlistStatus,
        to_status: WaitlistStatus,
        converted_reservation_id: Optional[int] = None,
    ) -> WaitlistEntry:
        with self.locks.hold((entry.restaurant_id, entry.requested_date)):
            if not self.entries.transition_status(
                entry.id, from_status, to_status, converted_reservation_id=converted_reservation_id
            ):
                self.db.rollback()
                self.db.refresh(entry)
                raise InvalidStateTransition("Waitlist entry", entry.status, to_status)
            self._commit(f"move waitlist entry to {to_status.value}")

        self.db.refresh(entry)
        logger.info(f"Waitlist entry {entry.id} is now {entry.status}")
        return entry

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {operation}: {e}")
            raise PersistenceError(operation) from e
