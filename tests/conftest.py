"""Pytest configuration and fixtures for reservation engine tests."""
import pytest
from datetime import date

from core.booking_rules import BookingRules
from core.locks import KeyedLocks
from db.session import create_engine, create_session_factory, init_db
from domain.models import ReservationCreate, RestaurantCreate, TableCreate, WaitlistCreate
from services.availability_cache import InMemoryAvailabilityCache
from services.recurring_service import RecurringService
from services.reservation_service import ReservationService
from services.restaurant_service import RestaurantService
from services.table_catalog import TableCatalog


class RecordingDispatcher:
    """Notification dispatcher fake that records every message."""

    def __init__(self, fail_on=()):
        self.sent = []
        self.fail_on = set(fail_on)

    def _record(self, kind, payload, slot=None):
        if kind in self.fail_on:
            raise RuntimeError(f"{kind} gateway down")
        self.sent.append((kind, payload, slot))

    def send_confirmation(self, reservation):
        self._record("confirmation", reservation)

    def send_status_update(self, reservation):
        self._record("status_update", reservation)

    def send_cancellation(self, reservation):
        self._record("cancellation", reservation)

    def send_waitlist_offer(self, entry, slot):
        self._record("waitlist_offer", entry, slot)

    def send_reminder(self, reservation):
        self._record("reminder", reservation)

    def kinds(self):
        return [kind for kind, _, _ in self.sent]

    def of_kind(self, kind):
        return [(payload, slot) for k, payload, slot in self.sent if k == kind]


@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Create a database session for testing."""
    session = create_session_factory(db_engine)()
    yield session
    session.close()


@pytest.fixture(scope="function")
def booking_date():
    """A Friday far enough ahead to never be in the past."""
    return date(2030, 6, 14)


@pytest.fixture(scope="function")
def rules():
    """Default policy: 30 minute slots, peak 18-21 capped at 90 minutes."""
    return BookingRules()


@pytest.fixture(scope="function")
def notifier():
    """Dispatcher that records every notification."""
    return RecordingDispatcher()


@pytest.fixture(scope="function")
def cache():
    return InMemoryAvailabilityCache(ttl_seconds=300, max_entries=100)


@pytest.fixture(scope="function")
def restaurant_service(db_session, cache):
    return RestaurantService(db_session, cache)


@pytest.fixture(scope="function")
def catalog(db_session, cache):
    return TableCatalog(db_session, cache)


@pytest.fixture(scope="function")
def reservation_service(db_session, notifier, cache, rules):
    """Reservation service with private lock registries."""
    return ReservationService(
        db_session,
        notifier=notifier,
        cache=cache,
        rules=rules,
        table_locks=KeyedLocks(),
        waitlist_locks=KeyedLocks(),
    )


@pytest.fixture(scope="function")
def ledger(reservation_service):
    return reservation_service.ledger


@pytest.fixture(scope="function")
def waitlist_service(reservation_service):
    return reservation_service.waitlist


@pytest.fixture(scope="function")
def availability_service(reservation_service):
    return reservation_service.availability


@pytest.fixture(scope="function")
def recurring_service(db_session, reservation_service, rules):
    return RecurringService(db_session, reservation_service, rules)


@pytest.fixture(scope="function")
def create_restaurant(restaurant_service):
    """Factory fixture to create a restaurant (open 10:00-22:00 by default)."""
    def _create(**kwargs):
        data = {"name": "Bistro Central", "opening_time": "10:00", "closing_time": "22:00"}
        data.update(kwargs)
        return restaurant_service.create(RestaurantCreate(**data))
    return _create


@pytest.fixture(scope="function")
def create_table(catalog):
    """Factory fixture to add a table to a restaurant."""
    def _create(restaurant_id, table_number="T1", capacity=4, min_capacity=1, **kwargs):
        return catalog.create(
            restaurant_id,
            TableCreate(table_number=table_number, capacity=capacity, min_capacity=min_capacity, **kwargs),
        )
    return _create


@pytest.fixture(scope="function")
def restaurant(create_restaurant):
    return create_restaurant()


@pytest.fixture(scope="function")
def table(restaurant, create_table):
    """The restaurant's single table: capacity 4, minimum 1."""
    return create_table(restaurant.id)


@pytest.fixture(scope="function")
def booking_request(booking_date):
    """Factory fixture building a reservation request."""
    def _build(restaurant_id, **kwargs):
        data = {
            "restaurant_id": restaurant_id,
            "party_size": 2,
            "reservation_date": booking_date,
            "start_time": "19:00",
            "duration_minutes": 90,
            "customer_name": "John Doe",
            "customer_phone": "+421901234567",
        }
        data.update(kwargs)
        return ReservationCreate(**data)
    return _build


@pytest.fixture(scope="function")
def create_reservation(reservation_service, booking_request):
    """Factory fixture to book a reservation through the reservation service."""
    def _create(restaurant_id, **kwargs):
        return reservation_service.create(booking_request(restaurant_id, **kwargs))
    return _create


@pytest.fixture(scope="function")
def waitlist_request(booking_date):
    """Factory fixture building a waitlist request (18:00-22:00 window by default)."""
    def _build(restaurant_id, customer_name="Guest", **kwargs):
        data = {
            "restaurant_id": restaurant_id,
            "party_size": 2,
            "requested_date": booking_date,
            "preferred_start_time": "18:00",
            "preferred_end_time": "22:00",
            "duration_minutes": 90,
            "customer_name": customer_name,
            "customer_phone": "+421901234567",
        }
        data.update(kwargs)
        return WaitlistCreate(**data)
    return _build


@pytest.fixture(scope="function")
def dispatcher_factory():
    """Build extra recording dispatchers, e.g. ones that fail on some kinds."""
    return RecordingDispatcher
