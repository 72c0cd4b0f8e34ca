"""Database session management for the table reservation engine."""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine as sa_create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import settings


class DatabaseConfig:
    """Database configuration settings."""

    DATABASE_URL: str = settings.database_url
    ECHO: bool = settings.database_echo

    # Connection pool settings (ignored by SQLite)
    POOL_SIZE: int = 5
    MAX_OVERFLOW: int = 10
    POOL_RECYCLE: int = 3600
    POOL_PRE_PING: bool = True


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create a SQLAlchemy engine.

    SQLite connections may be shared across threads; an in-memory
    database uses a single static connection so every session sees the
    same data.

    Args:
        url: Database URL (defaults to settings)
        echo: Whether to log all SQL statements

    Returns:
        SQLAlchemy engine
    """
    url = url or DatabaseConfig.DATABASE_URL
    echo = DatabaseConfig.ECHO if echo is None else echo

    if _is_sqlite(url):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = sa_create_engine(url, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return sa_create_engine(
        url,
        echo=echo,
        pool_size=DatabaseConfig.POOL_SIZE,
        max_overflow=DatabaseConfig.MAX_OVERFLOW,
        pool_recycle=DatabaseConfig.POOL_RECYCLE,
        pool_pre_ping=DatabaseConfig.POOL_PRE_PING,
    )


def create_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, class_=Session, autoflush=False)


# Global engine instance
engine: Engine = create_engine()

# Session factory
SessionLocal = create_session_factory(engine)


@contextmanager
def get_session_context(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for getting a database session.

    Services commit their own units of work; anything left pending when
    the block raises is rolled back.

    Example:
        with get_session_context() as session:
            service = ReservationService(session)
    """
    session = (factory or SessionLocal)()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Initialize database by creating all tables."""
    from . import models_sqlalchemy  # noqa: F401  registers mappers
    from .base import Base

    Base.metadata.create_all(bind=bind or engine)


def drop_db(bind: Optional[Engine] = None) -> None:
    """Drop all database tables. Use with caution!"""
    from .base import Base

    Base.metadata.drop_all(bind=bind or engine)


def close_db() -> None:
    """Close database engine and all connections."""
    engine.dispose()
