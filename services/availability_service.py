"""
Availability engine.

Combines opening hours, the table catalog and the booking ledger into the
list of open slots for a date, party size and duration. Results are
memoized in the availability cache; booking mutations never read them.
"""
import logging
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from core.booking_rules import BookingRules, get_booking_rules
from core.utils_time import generate_slots, parse_date, ranges_overlap, service_interval
from db.models_sqlalchemy import Restaurant, Table
from db.repositories import RestaurantRepository, ReservationRepository
from domain.errors import NotFound
from domain.models import AvailabilityResult, AvailabilitySlot, SuggestedTable, TableSummary
from services.availability_cache import AvailabilityCache
from services.table_catalog import TableCatalog


logger = logging.getLogger(__name__)


class AvailabilityService:
    """Computes open slots and validates booking windows against restaurant policy."""

    def __init__(
        self,
        db_session: Session,
        cache: Optional[AvailabilityCache] = None,
        rules: Optional[BookingRules] = None,
        catalog: Optional[TableCatalog] = None,
    ):
        """
        Initialize the availability service.

        Args:
            db_session: SQLAlchemy database session
            cache: Availability cache (no caching when omitted)
            rules: Booking rules (defaults to the application settings)
            catalog: Table catalog to select eligible tables with
        """
        self.db = db_session
        self.cache = cache
        self.rules = rules or get_booking_rules()
        self.catalog = catalog or TableCatalog(db_session, cache)
        self.restaurants = RestaurantRepository(db_session)
        self.reservations = ReservationRepository(db_session)

    def adjust_duration_for_peak_hours(self, start_time: str, duration_minutes: int) -> int:
        """Effective duration after the peak-hour cap."""
        return self.rules.peak_hours.adjust_duration(start_time, duration_minutes)

    def get_availability(
        self,
        restaurant_id: int,
        reservation_date,
        party_size: int,
        duration_minutes: Optional[int] = None,
    ) -> AvailabilityResult:
        """
        Open slots for a date and party size.

        Slots start at opening time and step by the slot interval; a slot is
        listed only if at least one eligible table is free for all of it.

        Args:
            restaurant_id: Restaurant to query
            reservation_date: Date or "YYYY-MM-DD" string
            party_size: Number of guests
            duration_minutes: Booking length (defaults to the configured default)

        Returns:
            AvailabilityResult with slots and up to N best-fit suggested tables

        Raises:
            NotFound: If the restaurant does not exist
            InvalidDateFormat: If the date string is malformed
        """
        reservation_date = parse_date(reservation_date)
        duration_minutes = duration_minutes or self.rules.default_duration_minutes

        cached = self._cache_get(restaurant_id, reservation_date, party_size, duration_minutes)
        if cached is not None:
            logger.debug(f"Availability cache hit for restaurant {restaurant_id} on {reservation_date}")
            return cached

        restaurant = self.restaurants.get(restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant", restaurant_id)

        result = self.compute_availability(restaurant, reservation_date, party_size, duration_minutes)
        self._cache_set(result)
        return result

    def compute_availability(
        self,
        restaurant: Restaurant,
        reservation_date: date,
        party_size: int,
        duration_minutes: int,
    ) -> AvailabilityResult:
        """Availability straight from the ledger, bypassing the cache."""
        result = AvailabilityResult(
            restaurant_id=restaurant.id,
            reservation_date=reservation_date,
            party_size=party_size,
            duration_minutes=duration_minutes,
        )

        eligible = self.catalog.find_eligible(restaurant.id, party_size)
        if not eligible:
            return result

        busy = self._busy_intervals(restaurant, reservation_date)

        for slot in generate_slots(
            restaurant.opening_time,
            restaurant.closing_time,
            duration_minutes,
            self.rules.slot_interval_minutes,
        ):
            start, end = service_interval(slot.start_time, duration_minutes, restaurant.opening_time)
            free = [
                TableSummary.model_validate(table)
                for table in eligible
                if not any(ranges_overlap(start, end, b_start, b_end) for b_start, b_end in busy.get(table.id, ()))
            ]
            if free:
                result.available_slots.append(
                    AvailabilitySlot(start_time=slot.start_time, end_time=slot.end_time, available_tables=free)
                )

        result.suggested_tables = self._suggest(eligible, party_size)
        return result

    def _busy_intervals(self, restaurant: Restaurant, reservation_date: date) -> Dict[int, List[Tuple[int, int]]]:
        busy: Dict[int, List[Tuple[int, int]]] = defaultdict(list)
        for reservation in self.reservations.find_active_for_date(restaurant.id, reservation_date):
            busy[reservation.table_id].append(reservation.interval(restaurant.opening_time))
        return busy

    def _suggest(self, eligible: List[Table], party_size: int) -> List[SuggestedTable]:
        return [
            SuggestedTable(
                id=table.id,
                table_number=table.table_number,
                capacity=table.capacity,
                min_capacity=table.min_capacity,
                location=table.location,
                fit_score=int(table.fit_score(party_size)),
            )
            for table in eligible[: self.rules.suggested_tables_limit]
        ]

    def _cache_get(self, restaurant_id: int, reservation_date: date, party_size: int, duration_minutes: int) -> Optional[AvailabilityResult]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(restaurant_id, reservation_date, party_size, duration_minutes)
        except Exception:
            logger.warning("Availability cache read failed; computing from the ledger", exc_info=True)
            return None

    def _cache_set(self, result: AvailabilityResult) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(result)
        except Exception:
            logger.warning("Availability cache write failed", exc_info=True)
