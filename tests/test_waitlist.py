"""Tests for the waitlist: queue position, FIFO promotion and entry lifecycle."""
import pytest

from db.repositories import WaitlistRepository
from domain.enums import WaitlistStatus
from domain.errors import (
    InvalidStateTransition,
    NotFound,
    OutsideOperatingHours,
    ReservationNotInRestaurant,
    RestaurantInactive,
)
from domain.events import FreedSlot
from domain.models import WaitlistUpdate
from services.reservation_service import ReservationService


@pytest.fixture
def two_tables(restaurant, create_table):
    return create_table(restaurant.id, "T1"), create_table(restaurant.id, "T2")


@pytest.fixture
def enqueue(waitlist_service, waitlist_request):
    """Factory fixture adding a guest to the waitlist."""
    def _enqueue(restaurant_id, customer_name="Guest", **kwargs):
        return waitlist_service.enqueue(waitlist_request(restaurant_id, customer_name, **kwargs))
    return _enqueue


@pytest.mark.integration
class TestFifoPromotion:
    """Tests for offering freed tables in arrival order."""

    def test_a_then_b_not_c(self, reservation_service, waitlist_service, notifier, restaurant, two_tables, create_reservation, enqueue):
        """Test A gets the first freed slot, and B (not C) the second after A expires."""
        first = create_reservation(restaurant.id, table_id=two_tables[0].id)
        second = create_reservation(restaurant.id, table_id=two_tables[1].id)
        a = enqueue(restaurant.id, "A")
        b = enqueue(restaurant.id, "B")
        c = enqueue(restaurant.id, "C")

        reservation_service.cancel(first.id)

        assert waitlist_service.get(a.id).status == WaitlistStatus.NOTIFIED.value
        assert waitlist_service.get(b.id).status == WaitlistStatus.WAITING.value
        offers = notifier.of_kind("waitlist_offer")
        assert [entry.customer_name for entry, _ in offers] == ["A"]
        assert offers[0][1].start_time == "19:00"
        assert offers[0][1].end_time == "20:30"

        waitlist_service.expire(a.id)
        reservation_service.cancel(second.id)

        assert waitlist_service.get(a.id).status == WaitlistStatus.EXPIRED.value
        assert waitlist_service.get(b.id).status == WaitlistStatus.NOTIFIED.value
        assert waitlist_service.get(c.id).status == WaitlistStatus.WAITING.value
        assert [entry.customer_name for entry, _ in notifier.of_kind("waitlist_offer")] == ["A", "B"]

    def test_no_show_promotes(self, reservation_service, waitlist_service, restaurant, table, create_reservation, enqueue):
        """Test a no-show frees the table like a cancellation."""
        reservation = create_reservation(restaurant.id)
        entry = enqueue(restaurant.id)

        reservation_service.no_show(reservation.id)

        assert waitlist_service.get(entry.id).status == WaitlistStatus.NOTIFIED.value

    def test_notification_recorded(self, waitlist_service, restaurant, table, enqueue, booking_date):
        """Test promotion counts and stamps the offer."""
        entry = enqueue(restaurant.id)

        promoted = waitlist_service.promote_on_freed_slot(restaurant.id, booking_date, "19:00", "20:30", 4)

        assert promoted.id == entry.id
        assert promoted.notification_count == 1
        assert promoted.last_notified_at is not None

    def test_promotion_is_exactly_once(self, waitlist_service, restaurant, table, enqueue, booking_date):
        """Test one entry is never offered two freed slots."""
        enqueue(restaurant.id)

        assert waitlist_service.promote_on_freed_slot(restaurant.id, booking_date, "19:00", "20:30", 4) is not None
        assert waitlist_service.promote_on_freed_slot(restaurant.id, booking_date, "19:00", "20:30", 4) is None

    def test_guarded_transition(self, db_session, restaurant, table, enqueue):
        """Test the status-guarded update only succeeds from the expected status."""
        entry = enqueue(restaurant.id)
        repo = WaitlistRepository(db_session)

        assert repo.transition_status(entry.id, WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED) is True
        assert repo.transition_status(entry.id, WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED) is False
        db_session.commit()

    def test_party_too_big_for_freed_table(self, waitlist_service, restaurant, table, enqueue, booking_date):
        """Test a freed two-seater skips a party of four for a party of two."""
        big = enqueue(restaurant.id, "Big", party_size=4)
        small = enqueue(restaurant.id, "Small", party_size=2)

        promoted = waitlist_service.promote_on_freed_slot(restaurant.id, booking_date, "19:00", "20:30", 2)

        assert promoted.id == small.id
        assert waitlist_service.get(big.id).status == WaitlistStatus.WAITING.value

    def test_offer_failure_keeps_promotion(self, db_session, rules, dispatcher_factory, restaurant, table, booking_request, enqueue):
        """Test a failing notification does not undo the cancellation or the promotion."""
        failing = dispatcher_factory(fail_on={"waitlist_offer", "cancellation"})
        service = ReservationService(db_session, notifier=failing, rules=rules)
        reservation = service.create(booking_request(restaurant.id))
        entry = enqueue(restaurant.id)

        cancelled = service.cancel(reservation.id)

        assert cancelled.status == "cancelled"
        assert service.waitlist.get(entry.id).status == WaitlistStatus.NOTIFIED.value
        assert failing.kinds() == ["confirmation"]


@pytest.mark.unit
class TestCandidates:
    """Tests for matching waitlist entries to a freed window."""

    def test_window_must_contain_slot(self, waitlist_service, restaurant, table, enqueue, booking_date):
        """Test only entries whose preferred window holds the slot are candidates."""
        lunch = enqueue(restaurant.id, "Lunch", preferred_start_time="11:00", preferred_end_time="14:00")
        evening = enqueue(restaurant.id, "Evening", preferred_start_time="18:00", preferred_end_time="22:00")
        tight = enqueue(restaurant.id, "Tight", preferred_start_time="19:30", preferred_end_time="21:00")

        candidates = waitlist_service.find_candidates_for_slot(restaurant.id, booking_date, "19:00", "20:30", 4)

        assert [e.id for e in candidates] == [evening.id]
        assert lunch.id not in [e.id for e in candidates]
        assert tight.id not in [e.id for e in candidates]

    def test_fifo_order(self, waitlist_service, restaurant, table, enqueue, booking_date):
        """Test candidates come oldest first."""
        ids = [enqueue(restaurant.id, name).id for name in ("A", "B", "C")]
        candidates = waitlist_service.find_candidates_for_slot(restaurant.id, booking_date, "19:00", "20:30", 4)
        assert [e.id for e in candidates] == ids

    def test_head_is_oldest_fitting(self, db_session, restaurant, table, enqueue, booking_date):
        """Test the queue head skips parties larger than the freed table."""
        enqueue(restaurant.id, "Big", party_size=6)
        small = enqueue(restaurant.id, "Small", party_size=2)

        head = WaitlistRepository(db_session).find_waitlist_head(
            restaurant.hours, restaurant.id, booking_date, "19:00", "20:30", 4
        )

        assert head.id == small.id

    def test_no_candidates(self, waitlist_service, notifier, restaurant, table, booking_date):
        """Test promotion with an empty waitlist does nothing."""
        assert waitlist_service.promote_on_freed_slot(restaurant.id, booking_date, "19:00", "20:30", 4) is None
        assert notifier.of_kind("waitlist_offer") == []


@pytest.mark.unit
class TestPosition:
    """Tests for queue position and wait estimates."""

    def test_positions(self, waitlist_service, restaurant, table, enqueue):
        """Test positions are 1-based in arrival order."""
        a, b, c = (enqueue(restaurant.id, name) for name in ("A", "B", "C"))
        assert [waitlist_service.position(e.id) for e in (a, b, c)] == [1, 2, 3]
        assert waitlist_service.estimated_wait_minutes(c.id) == 90

    def test_position_moves_up(self, waitlist_service, restaurant, table, enqueue, booking_date):
        """Test a notified entry leaves the queue and the rest move up."""
        a, b = enqueue(restaurant.id, "A"), enqueue(restaurant.id, "B")
        waitlist_service.promote_on_freed_slot(restaurant.id, booking_date, "19:00", "20:30", 4)

        assert waitlist_service.position(a.id) == -1
        assert waitlist_service.estimated_wait_minutes(a.id) is None
        assert waitlist_service.position(b.id) == 1
        assert waitlist_service.estimated_wait_minutes(b.id) == 30

    def test_position_per_date(self, waitlist_service, restaurant, table, enqueue):
        """Test entries for other dates do not count."""
        enqueue(restaurant.id, "Other day", requested_date="2030-06-15")
        entry = enqueue(restaurant.id, "Today")
        assert waitlist_service.position(entry.id) == 1


@pytest.mark.unit
class TestEntryLifecycle:
    """Tests for enqueue validation and entry transitions."""

    def test_enqueue(self, restaurant, table, enqueue):
        """Test new entries are WAITING."""
        entry = enqueue(restaurant.id)
        assert entry.status == WaitlistStatus.WAITING.value
        assert entry.notification_count == 0

    def test_enqueue_inactive_restaurant(self, restaurant_service, restaurant, enqueue):
        """Test a deactivated restaurant takes no waitlist entries."""
        restaurant_service.deactivate(restaurant.id)
        with pytest.raises(RestaurantInactive):
            enqueue(restaurant.id)

    def test_enqueue_outside_hours(self, restaurant, enqueue):
        """Test the preferred window must be inside opening hours."""
        with pytest.raises(OutsideOperatingHours):
            enqueue(restaurant.id, preferred_start_time="20:00", preferred_end_time="23:00")

    def test_get_not_found(self, waitlist_service):
        """Test unknown entries raise NotFound."""
        with pytest.raises(NotFound):
            waitlist_service.get(404)

    def test_expire_requires_notified(self, waitlist_service, restaurant, enqueue):
        """Test only offered entries can expire."""
        entry = enqueue(restaurant.id)
        with pytest.raises(InvalidStateTransition):
            waitlist_service.expire(entry.id)

    def test_explicit_notify(self, waitlist_service, notifier, restaurant, enqueue, booking_date):
        """Test offering a slot to a chosen entry."""
        entry = enqueue(restaurant.id)
        slot = FreedSlot(restaurant.id, booking_date, "19:00", "20:30", 4)

        notified = waitlist_service.notify(entry.id, slot)

        assert notified.status == WaitlistStatus.NOTIFIED.value
        assert len(notifier.of_kind("waitlist_offer")) == 1
        with pytest.raises(InvalidStateTransition):
            waitlist_service.notify(entry.id, slot)

    def test_convert_to_reservation(self, waitlist_service, restaurant, table, enqueue, create_reservation, booking_date):
        """Test converting an offer links the new reservation."""
        entry = enqueue(restaurant.id)
        waitlist_service.promote_on_freed_slot(restaurant.id, booking_date, "19:00", "20:30", 4)
        reservation = create_reservation(restaurant.id)

        converted = waitlist_service.convert_to_reservation(entry.id, reservation.id)

        assert converted.status == WaitlistStatus.SEATED.value
        assert converted.converted_reservation_id == reservation.id

    def test_convert_unknown_reservation(self, waitlist_service, restaurant, enqueue):
        """Test conversion needs an existing reservation."""
        entry = enqueue(restaurant.id)
        with pytest.raises(NotFound):
            waitlist_service.convert_to_reservation(entry.id, 999)

    def test_convert_reservation_from_other_restaurant(
        self, waitlist_service, restaurant, create_restaurant, create_table, enqueue, create_reservation
    ):
        """Test conversion rejects a reservation made at another restaurant."""
        entry = enqueue(restaurant.id)
        other = create_restaurant(name="Harbour Grill")
        create_table(other.id)
        elsewhere = create_reservation(other.id)

        with pytest.raises(ReservationNotInRestaurant):
            waitlist_service.convert_to_reservation(entry.id, elsewhere.id)

        unchanged = waitlist_service.get(entry.id)
        assert unchanged.status == WaitlistStatus.WAITING.value
        assert unchanged.converted_reservation_id is None

    def test_link_written_with_status(self, db_session, waitlist_service, restaurant, table, enqueue, create_reservation):
        """Test the reservation link is only stored when the guarded status change applies."""
        entry = enqueue(restaurant.id)
        reservation = create_reservation(restaurant.id)
        repo = WaitlistRepository(db_session)

        assert not repo.transition_status(
            entry.id, WaitlistStatus.NOTIFIED, WaitlistStatus.SEATED, converted_reservation_id=reservation.id
        )
        assert repo.transition_status(
            entry.id, WaitlistStatus.WAITING, WaitlistStatus.SEATED, converted_reservation_id=reservation.id
        )
        db_session.commit()

        db_session.refresh(entry)
        assert entry.status == WaitlistStatus.SEATED.value
        assert entry.converted_reservation_id == reservation.id

    def test_cancel(self, waitlist_service, restaurant, enqueue):
        """Test cancelling an entry, and not twice."""
        entry = enqueue(restaurant.id)
        assert waitlist_service.cancel(entry.id).status == WaitlistStatus.CANCELLED.value
        with pytest.raises(InvalidStateTransition):
            waitlist_service.cancel(entry.id)

    def test_update_window(self, waitlist_service, restaurant, enqueue):
        """Test updating the preferred window re-checks opening hours."""
        entry = enqueue(restaurant.id)

        updated = waitlist_service.update(entry.id, WaitlistUpdate(preferred_start_time="17:00"))
        assert updated.preferred_start_time == "17:00"

        with pytest.raises(OutsideOperatingHours):
            waitlist_service.update(entry.id, WaitlistUpdate(preferred_end_time="23:30"))

    def test_list(self, waitlist_service, restaurant, enqueue):
        """Test listing filters by status."""
        first = enqueue(restaurant.id, "A")
        enqueue(restaurant.id, "B")
        waitlist_service.cancel(first.id)

        page = waitlist_service.list(restaurant.id, status=WaitlistStatus.WAITING)

        assert page.total == 1
        assert page.items[0].customer_name == "B"
