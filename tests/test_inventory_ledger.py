from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.models import Booking, BookingSeat
from src.inventory import InventoryLedger, normalize_seat_numbers
from src.exceptions import SeatUnavailable, TripDeparted, TripNotFound, InvalidRequest, Conflict


def open_booking(db, trip, reference):
    booking = Booking(
        order_reference=reference,
        trip_id=trip.id,
        contact_name="Test Holder",
        contact_email="holder@example.com",
        total_price=Decimal("0"),
        currency="bwp",
        booking_status="pending",
        payment_status="pending"
    )
    db.add(booking)
    db.flush()
    return booking


@pytest.fixture
def ledger(db):
    return InventoryLedger(db)


def test_reserve_decrements_counter_and_records_seats(db, ledger, make_trip):
    trip = make_trip()
    booking = open_booking(db, trip, "RT-1")

    ledger.reserve_seats(trip.id, ["1A", "1B"], booking.id)
    db.commit()

    assert trip.available_seats == 8
    assert ledger.held_seat_numbers(trip.id) == ["1A", "1B"]
    assert ledger.held_count(trip.id) == 2


def test_reserve_is_all_or_nothing_when_a_seat_is_taken(db, ledger, make_trip):
    trip = make_trip()
    first = open_booking(db, trip, "RT-1")
    ledger.reserve_seats(trip.id, ["1A"], first.id)
    db.commit()

    second = open_booking(db, trip, "RT-2")
    with pytest.raises(SeatUnavailable) as exc:
        ledger.reserve_seats(trip.id, ["1B", "1A"], second.id)
    db.rollback()

    assert exc.value.details["seat_numbers"] == ["1A"]
    db.refresh(trip)
    assert trip.available_seats == 9
    assert ledger.held_seat_numbers(trip.id) == ["1A"]


def test_reserve_rejects_more_seats_than_available(db, ledger, make_trip):
    trip = make_trip(total_seats=2)
    booking = open_booking(db, trip, "RT-1")

    with pytest.raises(SeatUnavailable) as exc:
        ledger.reserve_seats(trip.id, ["1", "2", "3"], booking.id)

    assert exc.value.details["reason"] == "insufficient_capacity"


def test_reserve_rejects_trip_past_departure_time(db, ledger, make_trip):
    trip = make_trip(days_ahead=1)
    booking = open_booking(db, trip, "RT-1")
    later = trip.departs_at + timedelta(minutes=1)

    with pytest.raises(TripDeparted):
        ledger.reserve_seats(trip.id, ["1A"], booking.id, now=later)

    # The flag is left to the departure sweep
    db.refresh(trip)
    assert trip.has_departed is False
    assert trip.available_seats == 10


def test_reserve_rejects_unknown_trip(ledger):
    with pytest.raises(TripNotFound):
        ledger.reserve_seats(999, ["1A"], 1)


def test_release_is_idempotent(db, ledger, make_trip):
    trip = make_trip()
    booking = open_booking(db, trip, "RT-1")
    ledger.reserve_seats(trip.id, ["1A", "1B"], booking.id)
    db.commit()

    assert ledger.release_seats(trip.id, ["1A", "1B"], booking_id=booking.id) == 2
    db.commit()
    assert ledger.release_seats(trip.id, ["1A", "1B"], booking_id=booking.id) == 0
    db.commit()

    db.refresh(trip)
    assert trip.available_seats == 10
    assert db.query(BookingSeat).count() == 0


def test_release_only_touches_the_owning_booking(db, ledger, make_trip):
    trip = make_trip()
    owner = open_booking(db, trip, "RT-1")
    other = open_booking(db, trip, "RT-2")
    ledger.reserve_seats(trip.id, ["1A"], owner.id)
    db.commit()

    assert ledger.release_seats(trip.id, ["1A"], booking_id=other.id) == 0
    assert ledger.held_seat_numbers(trip.id) == ["1A"]


def test_resize_keeps_held_seats_accounted(db, ledger, make_trip):
    trip = make_trip(total_seats=10)
    booking = open_booking(db, trip, "RT-1")
    ledger.reserve_seats(trip.id, ["1", "2", "3"], booking.id)
    db.commit()

    trip = ledger.resize_capacity(trip, 5)
    db.commit()
    assert (trip.total_seats, trip.available_seats) == (5, 2)

    with pytest.raises(Conflict) as exc:
        ledger.resize_capacity(trip, 2)
    assert exc.value.details["reason"] == "capacity_below_held_seats"


def test_normalize_seat_numbers_rejects_duplicates_and_blanks():
    assert normalize_seat_numbers([" 1A", 2]) == ["1A", "2"]
    with pytest.raises(InvalidRequest):
        normalize_seat_numbers(["1A", "1A"])
    with pytest.raises(InvalidRequest):
        normalize_seat_numbers([])
    with pytest.raises(InvalidRequest):
        normalize_seat_numbers(["  "])
