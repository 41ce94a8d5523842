from datetime import date, time, timedelta
from decimal import Decimal

from src.trips.bulk_service import BulkTripService
from src.trips.schemas import (
    TripGenerationRequest, TripTemplate, TripBulkUpdateRequest, TripBulkFilter, TripUpdate
)
from tests.factories import booking_request


def template(**overrides):
    data = {
        "route_name": "Gaborone - Francistown",
        "route_origin": "Gaborone",
        "route_destination": "Francistown",
        "departure_time": time(8, 0),
        "fare": Decimal("500"),
    }
    data.update(overrides)
    return TripTemplate(**data)


def test_generate_trips_for_three_days(catalog):
    start = date.today() + timedelta(days=1)
    service = BulkTripService(catalog.db, catalog)

    result = service.generate_trips(TripGenerationRequest(
        templates=[template(), template(departure_time=time(20, 0))],
        start_date=start,
        days=3
    ))

    assert result.total_items == 6
    assert result.successful_items == 6
    assert result.failed_items == 0
    trips, total = catalog.list_trips()
    assert total == 6
    assert {t.departure_date for t in trips} == {start + timedelta(days=i) for i in range(3)}
    assert all(t.total_seats == 60 and t.available_seats == 60 for t in trips)


def test_generation_reports_duplicates_and_continues(catalog, make_trip):
    start = date.today() + timedelta(days=1)
    make_trip(days_ahead=2)
    service = BulkTripService(catalog.db, catalog)

    result = service.generate_trips(TripGenerationRequest(
        templates=[template()], start_date=start, end_date=start + timedelta(days=2)
    ))

    assert result.successful_items == 2
    assert result.failed_items == 1
    assert result.errors[0]["error"] == "conflict"
    assert result.errors[0]["departure_date"] == (start + timedelta(days=1)).isoformat()


def test_generation_window_continues_after_last_scheduled_day(catalog, make_trip):
    make_trip(days_ahead=4)
    service = BulkTripService(catalog.db, catalog)

    start, end = service.resolve_generation_window(TripGenerationRequest(templates=[template()]))

    assert start == date.today() + timedelta(days=5)
    assert end == start + timedelta(days=20)


def test_bulk_update_skips_trips_that_cannot_shrink(catalog, bookings, make_trip):
    busy = make_trip(days_ahead=1, total_seats=10)
    quiet = make_trip(days_ahead=2, total_seats=10)
    other_route = make_trip(days_ahead=2, total_seats=10, route_name="Gaborone - Maun")
    bookings.create_booking(booking_request(busy.id, ["1", "2", "3", "4", "5", "6"]))
    service = BulkTripService(catalog.db, catalog)

    result = service.bulk_update(TripBulkUpdateRequest(
        filters=TripBulkFilter(route_name="Gaborone - Francistown"),
        updates=TripUpdate(total_seats=5, fare=Decimal("520"))
    ))

    assert result.total_items == 2
    assert result.item_ids == [quiet.id]
    assert result.errors[0]["trip_id"] == busy.id
    assert result.errors[0]["details"]["reason"] == "capacity_below_held_seats"

    catalog.db.refresh(busy)
    catalog.db.refresh(other_route)
    assert busy.total_seats == 10
    assert busy.fare == Decimal("500")
    assert other_route.fare == Decimal("500")


def test_bulk_update_ignores_departed_trips_unless_included(catalog, make_trip):
    trip = make_trip(days_ahead=1)
    catalog.mark_departed(trip.id)
    service = BulkTripService(catalog.db, catalog)
    changes = TripUpdate(fare=Decimal("600"))

    skipped = service.bulk_update(TripBulkUpdateRequest(updates=changes))
    included = service.bulk_update(TripBulkUpdateRequest(
        filters=TripBulkFilter(include_departed=True), updates=changes
    ))

    assert skipped.total_items == 0
    assert included.item_ids == [trip.id]
