"""SQLAlchemy declarative base and shared column types for the reservation schema."""

from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, Integer, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from core.utils_time import utc_now


# Surrogate integer key used by every table
int_pk = Annotated[int, mapped_column(Integer, primary_key=True, autoincrement=True)]

# Zero-padded "HH:MM" wall-clock time
time_of_day = Annotated[str, mapped_column(String(5), nullable=False)]


CONSTRAINT_NAMES = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base for restaurants, tables, reservations, waitlist and series."""

    metadata = MetaData(naming_convention=CONSTRAINT_NAMES)

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """created_at / updated_at columns stamped on the Python side."""

    # Microsecond precision; waitlist FIFO order relies on it
    created_at: Mapped[datetime] = mapped_column(
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=True,
    )
