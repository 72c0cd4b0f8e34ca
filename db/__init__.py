"""Database layer for the table reservation engine."""

from .base import Base, TimestampMixin
from .models_sqlalchemy import Restaurant, Table, Reservation, WaitlistEntry, RecurringSeries
from .repositories import (
    Page,
    RestaurantRepository,
    TableRepository,
    ReservationRepository,
    WaitlistRepository,
    RecurringSeriesRepository,
)
from .session import (
    engine,
    SessionLocal,
    create_engine,
    create_session_factory,
    get_session_context,
    init_db,
    drop_db,
    close_db,
    DatabaseConfig,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Models
    "Restaurant",
    "Table",
    "Reservation",
    "WaitlistEntry",
    "RecurringSeries",
    # Repositories
    "Page",
    "RestaurantRepository",
    "TableRepository",
    "ReservationRepository",
    "WaitlistRepository",
    "RecurringSeriesRepository",
    # Session
    "engine",
    "SessionLocal",
    "create_engine",
    "create_session_factory",
    "get_session_context",
    "init_db",
    "drop_db",
    "close_db",
    "DatabaseConfig",
]
