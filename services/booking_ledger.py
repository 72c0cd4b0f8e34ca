"""
Booking ledger: the source of truth for table holds.

Every mutation re-derives table freedom from stored reservations while
holding the (table, date) lock, so two requests can never both place
overlapping active reservations on one table. Operations return the new
state together with the events to dispatch after commit.
"""
import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.booking_rules import BookingRules, get_booking_rules
from core.locks import KeyedLocks, table_locks
from core.utils_time import MINUTES_PER_DAY, add_minutes, parse_date, to_minutes, utc_now
from db.models_sqlalchemy import Reservation, Restaurant, Table
from db.repositories import Page, ReservationRepository, RestaurantRepository
from domain.enums import EventType, ReservationStatus, ReservationTransition
from domain.errors import (
    CapacityMismatch,
    InvalidStateTransition,
    NoCapacity,
    NotFound,
    OutsideOperatingHours,
    PersistenceError,
    RestaurantInactive,
    TableConflict,
    TableNotInRestaurant,
)
from domain.events import LedgerOutcome, reservation_event, slot_freed_event
from domain.lifecycle import target_status
from domain.models import ReservationCreate, ReservationUpdate
from services.availability_cache import AvailabilityCache
from services.table_catalog import TableCatalog


logger = logging.getLogger(__name__)


class BookingLedger:
    """Creates, changes and moves reservations through their lifecycle."""

    def __init__(
        self,
        db_session: Session,
        cache: Optional[AvailabilityCache] = None,
        rules: Optional[BookingRules] = None,
        catalog: Optional[TableCatalog] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        """
        Initialize the booking ledger.

        Args:
            db_session: SQLAlchemy database session
            cache: Availability cache invalidated on every mutation
            rules: Booking rules (defaults to the application settings)
            catalog: Table catalog used for best-fit selection
            locks: (table_id, date) lock registry, shared process-wide by default
        """
        self.db = db_session
        self.cache = cache
        self.rules = rules or get_booking_rules()
        self.catalog = catalog or TableCatalog(db_session, cache)
        self.locks = locks or table_locks
        self.restaurants = RestaurantRepository(db_session)
        self.reservations = ReservationRepository(db_session)

    # ==================== Queries ====================

    def get(self, reservation_id: int) -> Reservation:
        """
        Get a reservation by ID.

        Raises:
            NotFound: If the reservation does not exist
        """
        reservation = self.reservations.get(reservation_id)
        if reservation is None:
            raise NotFound("Reservation", reservation_id)
        return reservation

    def list_by_restaurant(
        self,
        restaurant_id: int,
        reservation_date=None,
        status: Optional[ReservationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        if reservation_date is not None:
            reservation_date = parse_date(reservation_date)
        return self.reservations.list_by_restaurant(restaurant_id, reservation_date, status, page, limit)

    def is_resource_free(
        self,
        table_id: int,
        reservation_date,
        start_time: str,
        end_time: str,
        exclude_reservation_id: Optional[int] = None,
    ) -> bool:
        """
        Whether no active reservation on the table overlaps [start, end).

        Args:
            table_id: Table to check
            reservation_date: Date or "YYYY-MM-DD" string
            start_time: Window start (HH:MM)
            end_time: Window end (HH:MM), may be past midnight
            exclude_reservation_id: Reservation to ignore, used when moving it

        Raises:
            NotFound: If the table does not exist
        """
        table = self.catalog.get(table_id)
        duration = (to_minutes(end_time) - to_minutes(start_time)) % MINUTES_PER_DAY
        return self._is_free(table, parse_date(reservation_date), start_time, duration, exclude_reservation_id)

    def find_free_resource(
        self,
        restaurant_id: int,
        reservation_date,
        start_time: str,
        end_time: str,
        party_size: int,
    ) -> Optional[Table]:
        """First free table in best-fit order, or None."""
        reservation_date = parse_date(reservation_date)
        duration = (to_minutes(end_time) - to_minutes(start_time)) % MINUTES_PER_DAY
        for table in self.catalog.find_eligible(restaurant_id, party_size):
            if self._is_free(table, reservation_date, start_time, duration):
                return table
        return None

    def _is_free(
        self,
        table: Table,
        reservation_date: date,
        start_time: str,
        duration_minutes: int,
        exclude_reservation_id: Optional[int] = None,
    ) -> bool:
        overlapping = self.reservations.find_overlapping(
            table.id,
            reservation_date,
            start_time,
            duration_minutes,
            opening_time=table.restaurant.opening_time,
            exclude_reservation_id=exclude_reservation_id,
        )
        return not overlapping

    # ==================== Validation ====================

    def _get_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.restaurants.get(restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant", restaurant_id)
        return restaurant

    def validate_window(self, restaurant: Restaurant, start_time: str, duration_minutes: int) -> str:
        """
        Check a booking window against opening hours and the peak-hour cap.

        Returns:
            The window's end time

        Raises:
            OutsideOperatingHours: If the window is not inside opening hours
            PeakHourDurationExceeded: If a peak-hour booking is too long
        """
        end_time = add_minutes(start_time, duration_minutes)
        if not restaurant.is_time_range_valid(start_time, end_time):
            raise OutsideOperatingHours(start_time, end_time, restaurant.opening_time, restaurant.closing_time)
        self.rules.peak_hours.enforce(start_time, duration_minutes)
        return end_time

    def _resolve_explicit_table(self, restaurant: Restaurant, table_id: int, party_size: int) -> Table:
        table = self.catalog.get(table_id)
        if table.restaurant_id != restaurant.id:
            raise TableNotInRestaurant(table_id, restaurant.id)
        if not table.is_active:
            raise TableConflict(table_id, f"Table {table.table_number} is not in service")
        if not table.can_accommodate(party_size):
            raise CapacityMismatch(table.table_number, party_size, table.min_capacity, table.capacity)
        return table

    # ==================== Mutations ====================

    def create(self, data: ReservationCreate) -> LedgerOutcome:
        """
        Create a reservation in PENDING status.

        With an explicit table_id that table is validated and claimed;
        otherwise the best-fit free table is assigned.

        Args:
            data: Reservation request

        Returns:
            LedgerOutcome with the reservation and a RESERVATION_CREATED event

        Raises:
            NotFound: If the restaurant or table does not exist
            RestaurantInactive: If the restaurant is deactivated
            OutsideOperatingHours: If the window is outside opening hours
            PeakHourDurationExceeded: If a peak-hour booking is too long
            CapacityMismatch: If the explicit table cannot seat the party
            TableConflict: If the explicit table is taken
            NoCapacity: If no table is free for the party and window
        """
        restaurant = self._get_restaurant(data.restaurant_id)
        if not restaurant.is_active:
            raise RestaurantInactive(restaurant.id)

        end_time = self.validate_window(restaurant, data.start_time, data.duration_minutes)

        if data.table_id is not None:
            table = self._resolve_explicit_table(restaurant, data.table_id, data.party_size)
            reservation = self._claim(table, data, end_time)
            if reservation is None:
                raise TableConflict(table.id)
        else:
            reservation = self._claim_best_fit(restaurant, data, end_time)

        self._invalidate(restaurant.id, reservation.reservation_date)
        logger.info(
            f"Created reservation {reservation.id} on table {reservation.table_id} "
            f"for {reservation.reservation_date} {reservation.start_time}-{reservation.end_time} "
            f"(party of {reservation.party_size})"
        )
        return LedgerOutcome(reservation, [reservation_event(EventType.RESERVATION_CREATED, reservation)])

    def _claim_best_fit(self, restaurant: Restaurant, data: ReservationCreate, end_time: str) -> Reservation:
        for table in self.catalog.find_eligible(restaurant.id, data.party_size):
            reservation = self._claim(table, data, end_time)
            if reservation is not None:
                return reservation

        alternatives = self.catalog.suggest_alternatives(
            restaurant.id, data.party_size, self.rules.alternative_tables_limit
        )
        logger.info(
            f"No capacity in restaurant {restaurant.id} for party of {data.party_size} "
            f"on {data.reservation_date} at {data.start_time}"
        )
        raise NoCapacity(data.party_size, [t.table_number for t in alternatives])

    def _claim(self, table: Table, data: ReservationCreate, end_time: str) -> Optional[Reservation]:
        """Insert the reservation on this table if it is free; None if it is taken."""
        with self.locks.hold((table.id, data.reservation_date)):
            if not self._is_free(table, data.reservation_date, data.start_time, data.duration_minutes):
                return None

            reservation = Reservation(
                restaurant_id=data.restaurant_id,
                table_id=table.id,
                recurring_series_id=data.recurring_series_id,
                customer_name=data.customer_name,
                customer_phone=data.customer_phone,
                customer_email=data.customer_email,
                party_size=data.party_size,
                reservation_date=data.reservation_date,
                start_time=data.start_time,
                end_time=end_time,
                duration_minutes=data.duration_minutes,
                status=ReservationStatus.PENDING.value,
                special_requests=data.special_requests,
            )
            self.reservations.add(reservation)
            self._commit("create reservation")

        self.db.refresh(reservation)
        return reservation

    def update(self, reservation_id: int, changes: ReservationUpdate) -> LedgerOutcome:
        """
        Modify a pending or confirmed reservation.

        Opening hours and the peak-hour cap are always re-checked. When the
        table, date or window changes, the target table must be free
        (ignoring this reservation).

        Raises:
            NotFound: If the reservation or a new table does not exist
            InvalidStateTransition: If the reservation is no longer modifiable
            OutsideOperatingHours: If the new window is outside opening hours
            PeakHourDurationExceeded: If the new window breaks the peak cap
            CapacityMismatch: If the party no longer fits the table
            TableConflict: If the target table is taken
        """
        reservation = self.get(reservation_id)
        if not reservation.can_be_modified():
            current = ReservationStatus(reservation.status)
            raise InvalidStateTransition(
                "Reservation",
                current,
                current,
                f"Reservation cannot be modified in {current.value} status",
            )

        restaurant = self._get_restaurant(reservation.restaurant_id)
        old_date = reservation.reservation_date

        new_date = changes.reservation_date or reservation.reservation_date
        new_start = changes.start_time or reservation.start_time
        new_duration = changes.duration_minutes or reservation.duration_minutes
        new_party = changes.party_size or reservation.party_size

        new_end = self.validate_window(restaurant, new_start, new_duration)

        if changes.table_id is not None and changes.table_id != reservation.table_id:
            table = self._resolve_explicit_table(restaurant, changes.table_id, new_party)
        else:
            table = reservation.table
            if not table.can_accommodate(new_party):
                raise CapacityMismatch(table.table_number, new_party, table.min_capacity, table.capacity)

        with self.locks.hold((table.id, new_date)):
            if changes.moves_booking and not self._is_free(
                table, new_date, new_start, new_duration, exclude_reservation_id=reservation.id
            ):
                raise TableConflict(table.id)

            reservation.table_id = table.id
            reservation.reservation_date = new_date
            reservation.start_time = new_start
            reservation.end_time = new_end
            reservation.duration_minutes = new_duration
            reservation.party_size = new_party
            for key in ("customer_name", "customer_phone", "customer_email", "special_requests"):
                value = getattr(changes, key)
                if value is not None:
                    setattr(reservation, key, value)

            self._commit("update reservation")

        self.db.refresh(reservation)

        self._invalidate(restaurant.id, new_date)
        if old_date != new_date:
            self._invalidate(restaurant.id, old_date)

        logger.info(f"Updated reservation {reservation.id}")
        return LedgerOutcome(reservation, [])

    def _apply_transition(
        self,
        reservation_id: int,
        transition: ReservationTransition,
        reason: Optional[str] = None,
    ) -> Reservation:
        reservation = self.get(reservation_id)

        with self.locks.hold((reservation.table_id, reservation.reservation_date)):
            # Status may have moved on in another session
            self.db.refresh(reservation)
            target = target_status(ReservationStatus(reservation.status), transition)

            now = utc_now()
            reservation.status = target.value
            if target == ReservationStatus.CONFIRMED:
                reservation.confirmed_at = now
            elif target == ReservationStatus.SEATED:
                reservation.seated_at = now
            elif target == ReservationStatus.COMPLETED:
                reservation.completed_at = now
            elif target == ReservationStatus.CANCELLED:
                reservation.cancelled_at = now
                reservation.cancellation_reason = reason

            self._commit(f"{transition.value} reservation")

        self.db.refresh(reservation)
        self._invalidate(reservation.restaurant_id, reservation.reservation_date)
        logger.info(f"Reservation {reservation.id} is now {reservation.status}")
        return reservation

    def confirm(self, reservation_id: int, send_notification: bool = True) -> LedgerOutcome:
        """PENDING -> CONFIRMED."""
        reservation = self._apply_transition(reservation_id, ReservationTransition.CONFIRM)
        events = [reservation_event(EventType.RESERVATION_CONFIRMED, reservation)] if send_notification else []
        return LedgerOutcome(reservation, events)

    def mark_seated(self, reservation_id: int) -> LedgerOutcome:
        """CONFIRMED -> SEATED."""
        return LedgerOutcome(self._apply_transition(reservation_id, ReservationTransition.SEAT))

    def mark_completed(self, reservation_id: int) -> LedgerOutcome:
        """SEATED -> COMPLETED."""
        return LedgerOutcome(self._apply_transition(reservation_id, ReservationTransition.COMPLETE))

    def cancel(self, reservation_id: int, reason: Optional[str] = None) -> LedgerOutcome:
        """
        PENDING/CONFIRMED -> CANCELLED.

        Returns:
            LedgerOutcome with a cancellation event and a SLOT_FREED event
            carrying the released table capacity and window
        """
        reservation = self._apply_transition(reservation_id, ReservationTransition.CANCEL, reason)
        return LedgerOutcome(
            reservation,
            [
                reservation_event(EventType.RESERVATION_CANCELLED, reservation),
                slot_freed_event(reservation, reservation.table.capacity),
            ],
        )

    def mark_no_show(self, reservation_id: int) -> LedgerOutcome:
        """PENDING/CONFIRMED -> NO_SHOW; the table is released like a cancellation."""
        reservation = self._apply_transition(reservation_id, ReservationTransition.NO_SHOW)
        return LedgerOutcome(reservation, [slot_freed_event(reservation, reservation.table.capacity)])

    def transition(
        self,
        reservation_id: int,
        transition: ReservationTransition,
        reason: Optional[str] = None,
    ) -> LedgerOutcome:
        """Apply a lifecycle transition by name."""
        transition = ReservationTransition(transition)
        if transition == ReservationTransition.CONFIRM:
            return self.confirm(reservation_id)
        if transition == ReservationTransition.SEAT:
            return self.mark_seated(reservation_id)
        if transition == ReservationTransition.COMPLETE:
            return self.mark_completed(reservation_id)
        if transition == ReservationTransition.CANCEL:
            return self.cancel(reservation_id, reason)
        return self.mark_no_show(reservation_id)

    # ==================== Helpers ====================

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {operation}: {e}")
            raise PersistenceError(operation) from e

    def _invalidate(self, restaurant_id: int, reservation_date: date) -> None:
        if self.cache is None:
            return
        try:
            self.cache.invalidate(restaurant_id, reservation_date)
        except Exception:
            logger.warning(
                f"Availability cache invalidation failed for restaurant {restaurant_id} on {reservation_date}",
                exc_info=True,
            )

    def reservations_for_series(
        self,
        series_id: int,
        from_date: Optional[date] = None,
        statuses: Optional[Iterable[ReservationStatus]] = None,
    ):
        return self.reservations.find_for_series(series_id, from_date, list(statuses) if statuses else None)
