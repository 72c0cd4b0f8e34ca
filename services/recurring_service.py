"""
Recurring reservations: a template that materializes one booking per
occurrence date.

A series keeps a cursor (next_occurrence_date) that only ever moves
forward in whole pattern steps. An occurrence that cannot be booked is
skipped and the cursor advances anyway.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.booking_rules import BookingRules, get_booking_rules
from core.logging import LogContext
from core.recurrence import advance, align_to_pattern, roll_forward
from core.utils_time import today as current_date
from db.models_sqlalchemy import RecurringSeries, Reservation, Restaurant
from db.repositories import RecurringSeriesRepository, RestaurantRepository
from domain.enums import RecurrencePattern, RecurringStatus, ReservationStatus
from domain.errors import (
    BookingError,
    CapacityMismatch,
    InvalidRecurrence,
    InvalidStateTransition,
    NotFound,
    PersistenceError,
    RestaurantInactive,
    TableNotInRestaurant,
)
from domain.models import RecurringSeriesCreate, RecurringSeriesUpdate, ReservationCreate
from services.reservation_service import ReservationService, get_reservation_service


logger = logging.getLogger(__name__)


def next_occurrence_date(series: RecurringSeries, from_date: date) -> Optional[date]:
    """
    First occurrence of the series on or after from_date.

    Starts from the series cursor (or its start date) and advances in
    whole pattern steps.

    Returns:
        The date, or None if the series is not active, has reached its
        occurrence cap, or the date would fall after end_date
    """
    if not series.is_active() or series.cap_reached():
        return None

    candidate = roll_forward(
        series.next_occurrence_date or series.start_date,
        from_date,
        RecurrencePattern(series.pattern),
        series.day_of_week,
        series.day_of_month,
    )
    if series.end_date is not None and candidate > series.end_date:
        return None
    return candidate


def validate_anchors(
    pattern: RecurrencePattern,
    day_of_week: Optional[int],
    day_of_month: Optional[int],
) -> None:
    """
    Check that the pattern has the anchor it needs.

    Raises:
        InvalidRecurrence: If a weekly/biweekly series lacks a 0-6 weekday
            or a monthly series lacks a 1-31 day of month
    """
    if pattern in (RecurrencePattern.WEEKLY, RecurrencePattern.BIWEEKLY):
        if day_of_week is None or not 0 <= day_of_week <= 6:
            raise InvalidRecurrence(f"{pattern.value} series require day_of_week between 0 (Monday) and 6 (Sunday)")
    if pattern == RecurrencePattern.MONTHLY:
        if day_of_month is None or not 1 <= day_of_month <= 31:
            raise InvalidRecurrence("monthly series require day_of_month between 1 and 31")


class RecurringService:
    """Service for managing recurring reservation series."""

    def __init__(
        self,
        db_session: Session,
        reservations: Optional[ReservationService] = None,
        rules: Optional[BookingRules] = None,
    ):
        """
        Initialize the recurring service.

        Args:
            db_session: SQLAlchemy database session
            reservations: Reservation service that books and cancels occurrences
            rules: Booking rules (defaults to the application settings)
        """
        self.db = db_session
        self.rules = rules or get_booking_rules()
        self.reservations = reservations or get_reservation_service(db_session, rules=self.rules)
        self.series_repo = RecurringSeriesRepository(db_session)
        self.restaurants = RestaurantRepository(db_session)

    # ==================== Series management ====================

    def get(self, series_id: int) -> RecurringSeries:
        series = self.series_repo.get(series_id)
        if series is None:
            raise NotFound("Recurring series", series_id)
        return series

    def _get_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.restaurants.get(restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant", restaurant_id)
        return restaurant

    def _validate_template(
        self,
        restaurant: Restaurant,
        table_id: Optional[int],
        party_size: int,
        start_time: str,
        duration_minutes: int,
    ) -> None:
        if table_id is not None:
            table = self.reservations.catalog.get(table_id)
            if table.restaurant_id != restaurant.id:
                raise TableNotInRestaurant(table_id, restaurant.id)
            if not table.can_accommodate(party_size):
                raise CapacityMismatch(table.table_number, party_size, table.min_capacity, table.capacity)
        self.reservations.ledger.validate_window(restaurant, start_time, duration_minutes)

    def create_series(self, data: RecurringSeriesCreate) -> RecurringSeries:
        """
        Create a recurring series and book its first occurrence.

        Args:
            data: Series template and schedule

        Returns:
            The series, with its cursor past the first occurrence

        Raises:
            InvalidRecurrence: If the anchors or date range are invalid
            NotFound: If the restaurant or table does not exist
            RestaurantInactive: If the restaurant is deactivated
            OutsideOperatingHours: If the template window is outside opening hours
            PeakHourDurationExceeded: If the template breaks the peak-hour cap
        """
        validate_anchors(data.pattern, data.day_of_week, data.day_of_month)
        if data.end_date is not None and data.end_date < data.start_date:
            raise InvalidRecurrence("end_date cannot be before start_date")

        restaurant = self._get_restaurant(data.restaurant_id)
        if not restaurant.is_active:
            raise RestaurantInactive(restaurant.id)
        self._validate_template(restaurant, data.table_id, data.party_size, data.start_time, data.duration_minutes)

        values = data.model_dump()
        values["pattern"] = data.pattern.value
        series = RecurringSeries(
            **values,
            status=RecurringStatus.ACTIVE.value,
            occurrences_created=0,
            next_occurrence_date=align_to_pattern(data.start_date, data.pattern, data.day_of_week, data.day_of_month),
        )
        self.series_repo.add(series)
        self._commit("create recurring series")
        self.db.refresh(series)
        logger.info(f"Created {series.pattern} series {series.id} starting {series.next_occurrence_date}")

        self.materialize_next(series)
        return series

    def update_series(self, series_id: int, changes: RecurringSeriesUpdate) -> RecurringSeries:
        """
        Change the template used for future occurrences.

        Already materialized reservations are left as they are.

        Raises:
            InvalidStateTransition: If the series is cancelled or completed
        """
        series = self.get(series_id)
        current = RecurringStatus(series.status)
        if current not in (RecurringStatus.ACTIVE, RecurringStatus.PAUSED):
            raise InvalidStateTransition(
                "Recurring series", current, current, f"Recurring series cannot be modified in {current.value} status"
            )

        values = changes.model_dump(exclude_unset=True, exclude_none=True)
        end_date = values.get("end_date", series.end_date)
        if end_date is not None and end_date < series.start_date:
            raise InvalidRecurrence("end_date cannot be before start_date")

        self._validate_template(
            self._get_restaurant(series.restaurant_id),
            values.get("table_id", series.table_id),
            values.get("party_size", series.party_size),
            values.get("start_time", series.start_time),
            values.get("duration_minutes", series.duration_minutes),
        )

        for key, value in values.items():
            setattr(series, key, value)
        self._finish_if_exhausted(series)

        self._commit("update recurring series")
        self.db.refresh(series)
        return series

    def pause(self, series_id: int) -> RecurringSeries:
        """ACTIVE -> PAUSED."""
        series = self.get(series_id)
        self._require_status(series, RecurringStatus.ACTIVE, RecurringStatus.PAUSED)
        series.status = RecurringStatus.PAUSED.value
        self._commit("pause recurring series")
        logger.info(f"Paused recurring series {series_id}")
        return series

    def resume(self, series_id: int, today: Optional[date] = None) -> RecurringSeries:
        """
        PAUSED -> ACTIVE.

        The cursor is rolled forward to the first occurrence on or after
        today, so dates missed while paused are not booked.
        """
        series = self.get(series_id)
        self._require_status(series, RecurringStatus.PAUSED, RecurringStatus.ACTIVE)
        today = today or self._local_today(series)

        series.status = RecurringStatus.ACTIVE.value
        series.next_occurrence_date = roll_forward(
            series.next_occurrence_date or series.start_date,
            today,
            RecurrencePattern(series.pattern),
            series.day_of_week,
            series.day_of_month,
        )
        self._finish_if_exhausted(series)
        self._commit("resume recurring series")
        logger.info(f"Resumed recurring series {series_id}, next occurrence {series.next_occurrence_date}")
        return series

    def cancel(self, series_id: int, cancel_future: bool = False, today: Optional[date] = None) -> RecurringSeries:
        """
        Stop a series.

        Args:
            series_id: Series to cancel
            cancel_future: Also cancel its pending and confirmed
                reservations dated today or later
            today: Reference date (defaults to the current date at the restaurant)

        Raises:
            InvalidStateTransition: If the series is already cancelled
        """
        series = self.get(series_id)
        if series.status == RecurringStatus.CANCELLED:
            raise InvalidStateTransition("Recurring series", RecurringStatus.CANCELLED, RecurringStatus.CANCELLED)

        series.status = RecurringStatus.CANCELLED.value
        series.next_occurrence_date = None
        self._commit("cancel recurring series")

        if cancel_future:
            future = self.reservations.ledger.reservations_for_series(
                series_id,
                today or self._local_today(series),
                [ReservationStatus.PENDING, ReservationStatus.CONFIRMED],
            )
            cancelled = self.reservations.cancel_many([r.id for r in future], reason="Recurring series cancelled")
            logger.info(f"Cancelled {len(cancelled)} future reservations of series {series_id}")

        self.db.refresh(series)
        logger.info(f"Cancelled recurring series {series_id}")
        return series

    def upcoming_occurrences(self, series_id: int, limit: Optional[int] = None) -> List[date]:
        """
        Projected occurrence dates from the cursor, without booking them.

        Respects end_date and the remaining occurrence cap. Empty unless
        the series is active.
        """
        series = self.get(series_id)
        limit = limit or self.rules.upcoming_occurrences_limit
        if not series.is_active() or series.next_occurrence_date is None:
            return []

        remaining = limit
        if series.max_occurrences is not None:
            remaining = min(limit, series.max_occurrences - series.occurrences_created)

        pattern = RecurrencePattern(series.pattern)
        dates = []
        cursor = series.next_occurrence_date
        while len(dates) < remaining:
            if series.end_date is not None and cursor > series.end_date:
                break
            dates.append(cursor)
            cursor = advance(cursor, pattern, series.day_of_week, series.day_of_month)
        return dates

    # ==================== Materialization ====================

    def materialize_next(self, series: RecurringSeries, from_date: Optional[date] = None) -> Optional[Reservation]:
        """
        Book the next occurrence of the series.

        A refused booking skips the occurrence and the cursor still advances.
        A PersistenceError propagates and leaves the cursor where it was.
        The series is COMPLETED once its cap is reached or its cursor
        passes end_date.

        Args:
            series: Series to advance
            from_date: Skip occurrences before this date (defaults to the cursor)

        Returns:
            The new reservation, or None if nothing was booked
        """
        occurrence = next_occurrence_date(series, from_date or series.next_occurrence_date or series.start_date)
        if occurrence is None:
            if self._finish_if_exhausted(series):
                self._commit("complete recurring series")
            return None

        reservation = None
        try:
            reservation = self.reservations.create(
                ReservationCreate(
                    restaurant_id=series.restaurant_id,
                    table_id=series.table_id,
                    party_size=series.party_size,
                    reservation_date=occurrence,
                    start_time=series.start_time,
                    duration_minutes=series.duration_minutes,
                    customer_name=series.customer_name,
                    customer_phone=series.customer_phone,
                    customer_email=series.customer_email,
                    special_requests=series.special_requests,
                    recurring_series_id=series.id,
                )
            )
            series.occurrences_created += 1
            series.last_occurrence_date = occurrence
        except PersistenceError:
            raise
        except BookingError as e:
            logger.warning(f"Skipped occurrence {occurrence} of series {series.id}: {e.message}")

        series.next_occurrence_date = advance(
            occurrence, RecurrencePattern(series.pattern), series.day_of_week, series.day_of_month
        )
        self._finish_if_exhausted(series)
        self._commit("advance recurring series")
        return reservation

    def process_scheduled_occurrences(self, today: Optional[date] = None) -> int:
        """
        Book every due occurrence of every active series up to the lookahead horizon.

        Args:
            today: Reference date for every series (defaults to the
                current date in each series' restaurant timezone)

        Returns:
            Number of reservations created
        """
        lookahead = timedelta(days=self.rules.recurring_lookahead_days)
        # Local dates are at most one day ahead of UTC
        horizon = (today or current_date("UTC") + timedelta(days=1)) + lookahead
        created = 0

        for series in self.series_repo.find_due(horizon):
            series_today = today or self._local_today(series)
            series_horizon = series_today + lookahead
            with LogContext(logger, series_id=series.id, pattern=series.pattern) as ctx:
                booked = 0
                while True:
                    occurrence = next_occurrence_date(series, series_today)
                    if occurrence is None or occurrence > series_horizon:
                        break
                    if self.materialize_next(series, series_today) is not None:
                        booked += 1
                created += booked
                ctx.log("info", f"Materialized {booked} occurrences", next_occurrence=str(series.next_occurrence_date))

        logger.info(f"Recurring pass created {created} reservations up to {horizon}")
        return created

    # ==================== Helpers ====================

    def _require_status(self, series: RecurringSeries, required: RecurringStatus, target: RecurringStatus) -> None:
        if series.status != required:
            raise InvalidStateTransition("Recurring series", RecurringStatus(series.status), target)

    def _local_today(self, series: RecurringSeries) -> date:
        return current_date(self._get_restaurant(series.restaurant_id).timezone)

    def _finish_if_exhausted(self, series: RecurringSeries) -> bool:
        """Mark an active series COMPLETED if it cannot produce more occurrences."""
        if series.status != RecurringStatus.ACTIVE:
            return False
        past_end = (
            series.end_date is not None
            and series.next_occurrence_date is not None
            and series.next_occurrence_date > series.end_date
        )
        if series.cap_reached() or past_end:
            series.status = RecurringStatus.COMPLETED.value
            logger.info(f"Recurring series {series.id} completed after {series.occurrences_created} occurrences")
            return True
        return False

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {operation}: {e}")
            raise PersistenceError(operation) from e
