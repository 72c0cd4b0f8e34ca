"""
Named queries over the reservation store.

Services go through these methods instead of building queries at call
sites, so each access path is visible and testable in one place.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Generic, List, Optional, Sequence, TypeVar

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from core.booking_rules import OperatingHours
from core.utils_time import MINUTES_PER_DAY, ranges_overlap, service_interval, to_minutes
from domain.enums import RecurringStatus, ReservationStatus, WaitlistStatus
from .models_sqlalchemy import RecurringSeries, Reservation, Restaurant, Table, WaitlistEntry


T = TypeVar("T")

ACTIVE_RESERVATION_STATUSES = [s.value for s in ReservationStatus.active()]


@dataclass
class Page(Generic[T]):
    """One page of a listing."""
    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _paginate(session: Session, stmt, page: int, limit: int) -> Page:
    page = max(page, 1)
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    items = list(session.scalars(stmt.offset((page - 1) * limit).limit(limit)))
    return Page(items=items, total=total, page=page, limit=limit)


class RestaurantRepository:
    """Restaurant lookups."""

    def __init__(self, session: Session):
        self.db = session

    def get(self, restaurant_id: int) -> Optional[Restaurant]:
        return self.db.get(Restaurant, restaurant_id)

    def add(self, restaurant: Restaurant) -> Restaurant:
        self.db.add(restaurant)
        return restaurant

    def list(self, active_only: bool = False) -> List[Restaurant]:
        stmt = select(Restaurant).order_by(Restaurant.name, Restaurant.id)
        if active_only:
            stmt = stmt.where(Restaurant.is_active.is_(True))
        return list(self.db.scalars(stmt))


class TableRepository:
    """Table lookups, ordered for best-fit allocation."""

    def __init__(self, session: Session):
        self.db = session

    def get(self, table_id: int) -> Optional[Table]:
        return self.db.get(Table, table_id)

    def add(self, table: Table) -> Table:
        self.db.add(table)
        return table

    def find_eligible_tables(self, restaurant_id: int, party_size: int) -> List[Table]:
        """
        Active tables seating the party, smallest first.

        Ties go to the lower table number compared as text ("T10" before
        "T2"), then to the older table.
        """
        stmt = (
            select(Table)
            .where(
                Table.restaurant_id == restaurant_id,
                Table.is_active.is_(True),
                Table.min_capacity <= party_size,
                Table.capacity >= party_size,
            )
            .order_by(Table.capacity.asc(), Table.table_number.asc(), Table.id.asc())
        )
        return list(self.db.scalars(stmt))

    def find_with_min_capacity(self, restaurant_id: int, min_capacity: int) -> List[Table]:
        """Active tables with at least min_capacity seats, ignoring their minimum party size."""
        stmt = (
            select(Table)
            .where(
                Table.restaurant_id == restaurant_id,
                Table.is_active.is_(True),
                Table.capacity >= min_capacity,
            )
            .order_by(Table.capacity.asc(), Table.table_number.asc(), Table.id.asc())
        )
        return list(self.db.scalars(stmt))

    def find_by_number(self, restaurant_id: int, table_number: str) -> Optional[Table]:
        stmt = select(Table).where(
            Table.restaurant_id == restaurant_id,
            Table.table_number == table_number,
        )
        return self.db.scalars(stmt).first()

    def list_for_restaurant(self, restaurant_id: int, include_inactive: bool = False) -> List[Table]:
        stmt = (
            select(Table)
            .where(Table.restaurant_id == restaurant_id)
            .order_by(Table.table_number.asc(), Table.id.asc())
        )
        if not include_inactive:
            stmt = stmt.where(Table.is_active.is_(True))
        return list(self.db.scalars(stmt))

    def count_active(self, restaurant_id: int) -> int:
        stmt = select(func.count(Table.id)).where(
            Table.restaurant_id == restaurant_id,
            Table.is_active.is_(True),
        )
        return self.db.scalar(stmt) or 0


class ReservationRepository:
    """Reservation lookups, including the overlap query behind conflict detection."""

    def __init__(self, session: Session):
        self.db = session

    def get(self, reservation_id: int) -> Optional[Reservation]:
        return self.db.get(Reservation, reservation_id)

    def add(self, reservation: Reservation) -> Reservation:
        self.db.add(reservation)
        return reservation

    def find_for_table_and_date(
        self,
        table_id: int,
        reservation_date: date,
        exclude_reservation_id: Optional[int] = None,
    ) -> List[Reservation]:
        """Reservations holding the table on that date."""
        stmt = select(Reservation).where(
            Reservation.table_id == table_id,
            Reservation.reservation_date == reservation_date,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        )
        if exclude_reservation_id is not None:
            stmt = stmt.where(Reservation.id != exclude_reservation_id)
        # Fresh rows: another session may have changed them since they were loaded
        stmt = stmt.execution_options(populate_existing=True)
        return list(self.db.scalars(stmt))

    def find_overlapping(
        self,
        table_id: int,
        reservation_date: date,
        start_time: str,
        duration_minutes: int,
        opening_time: str = "00:00",
        exclude_reservation_id: Optional[int] = None,
    ) -> List[Reservation]:
        """Active reservations on the table whose window meets [start, start + duration)."""
        start, end = service_interval(start_time, duration_minutes, opening_time)
        return [
            r
            for r in self.find_for_table_and_date(table_id, reservation_date, exclude_reservation_id)
            if ranges_overlap(start, end, *r.interval(opening_time))
        ]

    def find_active_for_date(self, restaurant_id: int, reservation_date: date) -> List[Reservation]:
        """Every reservation of the restaurant on that date that still holds a table."""
        stmt = (
            select(Reservation)
            .where(
                Reservation.restaurant_id == restaurant_id,
                Reservation.reservation_date == reservation_date,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            )
            .order_by(Reservation.start_time, Reservation.id)
        )
        return list(self.db.scalars(stmt))

    def find_by_status(self, reservation_date: date, status: ReservationStatus) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(
                Reservation.reservation_date == reservation_date,
                Reservation.status == status.value,
            )
            .order_by(Reservation.restaurant_id, Reservation.start_time, Reservation.id)
        )
        return list(self.db.scalars(stmt))

    def find_for_series(
        self,
        series_id: int,
        from_date: Optional[date] = None,
        statuses: Optional[Sequence[ReservationStatus]] = None,
    ) -> List[Reservation]:
        stmt = select(Reservation).where(Reservation.recurring_series_id == series_id)
        if from_date is not None:
            stmt = stmt.where(Reservation.reservation_date >= from_date)
        if statuses:
            stmt = stmt.where(Reservation.status.in_([s.value for s in statuses]))
        return list(self.db.scalars(stmt.order_by(Reservation.reservation_date, Reservation.id)))

    def list_by_restaurant(
        self,
        restaurant_id: int,
        reservation_date: Optional[date] = None,
        status: Optional[ReservationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        stmt = select(Reservation).where(Reservation.restaurant_id == restaurant_id)
        if reservation_date is not None:
            stmt = stmt.where(Reservation.reservation_date == reservation_date)
        if status is not None:
            stmt = stmt.where(Reservation.status == ReservationStatus(status).value)
        stmt = stmt.order_by(Reservation.reservation_date, Reservation.start_time, Reservation.id)
        return _paginate(self.db, stmt, page, limit)


def window_contains(hours: OperatingHours, outer_start: str, outer_end: str, inner_start: str, inner_end: str) -> bool:
    """Whether [inner_start, inner_end) lies inside [outer_start, outer_end) on the service day."""
    o_start = hours.minutes_since_opening(outer_start)
    o_end = o_start + (to_minutes(outer_end) - to_minutes(outer_start)) % MINUTES_PER_DAY
    i_start = hours.minutes_since_opening(inner_start)
    i_end = i_start + (to_minutes(inner_end) - to_minutes(inner_start)) % MINUTES_PER_DAY
    return o_start <= i_start and i_end <= o_end


class WaitlistRepository:
    """Waitlist lookups in first-come-first-served order."""

    def __init__(self, session: Session):
        self.db = session

    @staticmethod
    def _fifo_order():
        return (WaitlistEntry.created_at.asc(), WaitlistEntry.id.asc())

    def get(self, entry_id: int) -> Optional[WaitlistEntry]:
        return self.db.get(WaitlistEntry, entry_id)

    def add(self, entry: WaitlistEntry) -> WaitlistEntry:
        self.db.add(entry)
        return entry

    def count_ahead(self, entry: WaitlistEntry) -> int:
        """WAITING entries for the same restaurant and date that joined before this one."""
        stmt = select(func.count(WaitlistEntry.id)).where(
            WaitlistEntry.restaurant_id == entry.restaurant_id,
            WaitlistEntry.requested_date == entry.requested_date,
            WaitlistEntry.status == WaitlistStatus.WAITING.value,
            or_(
                WaitlistEntry.created_at < entry.created_at,
                and_(WaitlistEntry.created_at == entry.created_at, WaitlistEntry.id < entry.id),
            ),
        )
        return self.db.scalar(stmt) or 0

    def find_waiting(self, restaurant_id: int, requested_date: date, max_party_size: Optional[int] = None) -> List[WaitlistEntry]:
        stmt = select(WaitlistEntry).where(
            WaitlistEntry.restaurant_id == restaurant_id,
            WaitlistEntry.requested_date == requested_date,
            WaitlistEntry.status == WaitlistStatus.WAITING.value,
        )
        if max_party_size is not None:
            stmt = stmt.where(WaitlistEntry.party_size <= max_party_size)
        stmt = stmt.order_by(*self._fifo_order()).execution_options(populate_existing=True)
        return list(self.db.scalars(stmt))

    def find_waitlist_candidates(
        self,
        hours: OperatingHours,
        restaurant_id: int,
        requested_date: date,
        start_time: str,
        end_time: str,
        max_party_size: int,
    ) -> List[WaitlistEntry]:
        """WAITING entries whose preferred window holds [start, end) and whose party fits, oldest first."""
        return [
            entry
            for entry in self.find_waiting(restaurant_id, requested_date, max_party_size)
            if window_contains(hours, entry.preferred_start_time, entry.preferred_end_time, start_time, end_time)
        ]

    def find_waitlist_head(
        self,
        hours: OperatingHours,
        restaurant_id: int,
        requested_date: date,
        start_time: str,
        end_time: str,
        max_party_size: int,
    ) -> Optional[WaitlistEntry]:
        candidates = self.find_waitlist_candidates(
            hours, restaurant_id, requested_date, start_time, end_time, max_party_size
        )
        return candidates[0] if candidates else None

    def transition_status(
        self,
        entry_id: int,
        from_status: WaitlistStatus,
        to_status: WaitlistStatus,
        notified_at: Optional[datetime] = None,
        converted_reservation_id: Optional[int] = None,
    ) -> bool:
        """
        Move an entry between statuses only if it is still in from_status.

        A notified_at stamp also counts the offer; a converted_reservation_id
        is linked in the same UPDATE.

        Returns:
            True if this call changed the row
        """
        values = {"status": to_status.value}
        if notified_at is not None:
            values["notification_count"] = WaitlistEntry.notification_count + 1
            values["last_notified_at"] = notified_at
        if converted_reservation_id is not None:
            values["converted_reservation_id"] = converted_reservation_id
        stmt = (
            update(WaitlistEntry)
            .where(WaitlistEntry.id == entry_id, WaitlistEntry.status == from_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def list(
        self,
        restaurant_id: int,
        requested_date: Optional[date] = None,
        status: Optional[WaitlistStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        stmt = select(WaitlistEntry).where(WaitlistEntry.restaurant_id == restaurant_id)
        if requested_date is not None:
            stmt = stmt.where(WaitlistEntry.requested_date == requested_date)
        if status is not None:
            stmt = stmt.where(WaitlistEntry.status == WaitlistStatus(status).value)
        stmt = stmt.order_by(WaitlistEntry.requested_date, *self._fifo_order())
        return _paginate(self.db, stmt, page, limit)


class RecurringSeriesRepository:
    """Recurring series lookups."""

    def __init__(self, session: Session):
        self.db = session

    def get(self, series_id: int) -> Optional[RecurringSeries]:
        return self.db.get(RecurringSeries, series_id)

    def add(self, series: RecurringSeries) -> RecurringSeries:
        self.db.add(series)
        return series

    def find_due(self, horizon: date) -> List[RecurringSeries]:
        """Active series whose next occurrence falls on or before the horizon."""
        stmt = (
            select(RecurringSeries)
            .where(
                RecurringSeries.status == RecurringStatus.ACTIVE.value,
                RecurringSeries.next_occurrence_date.is_not(None),
                RecurringSeries.next_occurrence_date <= horizon,
            )
            .order_by(RecurringSeries.next_occurrence_date, RecurringSeries.id)
        )
        return list(self.db.scalars(stmt))
