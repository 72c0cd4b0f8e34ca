"""SQLAlchemy models for the table reservation engine."""

import math
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, int_pk, time_of_day
from core.booking_rules import OperatingHours
from core.utils_time import service_interval
from domain.enums import RecurringStatus, ReservationStatus, WaitlistStatus
from domain.lifecycle import MODIFIABLE_STATUSES


class Restaurant(Base, TimestampMixin):
    """Restaurant with its opening hours."""

    __tablename__ = "restaurants"

    id: Mapped[int_pk]

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # "HH:MM"; closing earlier than opening means closing after midnight
    opening_time: Mapped[time_of_day]
    closing_time: Mapped[time_of_day]

    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Derived from active tables, recomputed by the catalog
    total_tables: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tables: Mapped[List["Table"]] = relationship(
        back_populates="restaurant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def hours(self) -> OperatingHours:
        return OperatingHours(self.opening_time, self.closing_time)

    def is_open_at(self, value: str) -> bool:
        return self.hours.is_open_at(value)

    def is_time_range_valid(self, start_time: str, end_time: str) -> bool:
        return self.hours.is_time_range_valid(start_time, end_time)

    def __repr__(self) -> str:
        return (
            f"<Restaurant(id={self.id}, name='{self.name}', "
            f"hours={self.opening_time}-{self.closing_time}, active={self.is_active})>"
        )


class Table(Base, TimestampMixin):
    """A bookable table."""

    __tablename__ = "restaurant_tables"

    id: Mapped[int_pk]

    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    table_number: Mapped[str] = mapped_column(String(20), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    min_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="tables")

    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_restaurant_tables_restaurant_id_table_number"),
        Index("ix_restaurant_tables_restaurant_active_capacity", "restaurant_id", "is_active", "capacity"),
    )

    def can_accommodate(self, party_size: int) -> bool:
        return self.min_capacity <= party_size <= self.capacity

    def fit_score(self, party_size: int) -> Union[int, float]:
        """Seats left empty; lower is better, 0 is a perfect fit, inf if the party does not fit."""
        if not self.can_accommodate(party_size):
            return math.inf
        return self.capacity - party_size

    def __repr__(self) -> str:
        return (
            f"<Table(id={self.id}, number='{self.table_number}', "
            f"seats={self.min_capacity}-{self.capacity}, active={self.is_active})>"
        )


class Reservation(Base, TimestampMixin):
    """A time-bound hold on one table."""

    __tablename__ = "reservations"

    id: Mapped[int_pk]

    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
    )
    table_id: Mapped[int] = mapped_column(
        ForeignKey("restaurant_tables.id", ondelete="CASCADE"),
        nullable=False,
    )
    recurring_series_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_series.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    reservation_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time_of_day]
    end_time: Mapped[time_of_day]
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReservationStatus.PENDING.value,
        index=True,
    )

    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    seated_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    table: Mapped["Table"] = relationship()
    recurring_series: Mapped[Optional["RecurringSeries"]] = relationship(back_populates="reservations")

    __table_args__ = (
        Index("ix_reservations_table_date", "table_id", "reservation_date"),
        Index("ix_reservations_restaurant_date_status", "restaurant_id", "reservation_date", "status"),
    )

    def can_be_modified(self) -> bool:
        return ReservationStatus(self.status) in MODIFIABLE_STATUSES

    def interval(self, opening_time: str = "00:00") -> Tuple[int, int]:
        return service_interval(self.start_time, self.duration_minutes, opening_time)

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, table_id={self.table_id}, "
            f"date={self.reservation_date}, time={self.start_time}-{self.end_time}, "
            f"party={self.party_size}, status='{self.status}')>"
        )


class WaitlistEntry(Base, TimestampMixin):
    """Unmet demand for a date, served first come first served."""

    __tablename__ = "waitlist_entries"

    id: Mapped[int_pk]

    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
    )

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_date: Mapped[date] = mapped_column(Date, nullable=False)
    preferred_start_time: Mapped[time_of_day]
    preferred_end_time: Mapped[time_of_day]
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=WaitlistStatus.WAITING.value,
    )

    notification_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_notified_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    converted_reservation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("reservations.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_waitlist_entries_restaurant_date_status", "restaurant_id", "requested_date", "status"),
    )

    def is_valid(self) -> bool:
        """Still in the queue (waiting or holding an offer)."""
        return self.status in (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED)

    def __repr__(self) -> str:
        return (
            f"<WaitlistEntry(id={self.id}, date={self.requested_date}, "
            f"window={self.preferred_start_time}-{self.preferred_end_time}, "
            f"party={self.party_size}, status='{self.status}')>"
        )


class RecurringSeries(Base, TimestampMixin):
    """Template for a reservation that repeats on a schedule."""

    __tablename__ = "recurring_series"

    id: Mapped[int_pk]

    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("restaurant_tables.id", ondelete="SET NULL"),
        nullable=True,
    )

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)

    pattern: Mapped[str] = mapped_column(String(20), nullable=False)
    day_of_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 0 = Monday
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    start_time: Mapped[time_of_day]
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    max_occurrences: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    occurrences_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_occurrence_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_occurrence_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RecurringStatus.ACTIVE.value,
        index=True,
    )

    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    reservations: Mapped[List["Reservation"]] = relationship(
        back_populates="recurring_series",
        passive_deletes=True,
    )

    def is_active(self) -> bool:
        return self.status == RecurringStatus.ACTIVE

    def cap_reached(self) -> bool:
        return self.max_occurrences is not None and self.occurrences_created >= self.max_occurrences

    def __repr__(self) -> str:
        return (
            f"<RecurringSeries(id={self.id}, pattern='{self.pattern}', "
            f"next={self.next_occurrence_date}, created={self.occurrences_created}, "
            f"status='{self.status}')>"
        )
