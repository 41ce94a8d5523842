import asyncio
from datetime import datetime, time, timedelta

from src.trips.departure_scheduler import DepartureScheduler, MaintenanceLoop
from tests.factories import booking_request


def test_sweep_marks_only_due_trips(db, make_trip):
    due = make_trip(days_ahead=1, departure_time=time(6, 0))
    later = make_trip(days_ahead=1, departure_time=time(22, 0))
    now = datetime.combine(due.departure_date, time(12, 0))

    departed = DepartureScheduler(db).sweep(now=now)

    assert departed == [due.id]
    db.refresh(later)
    assert later.has_departed is False


def test_sweep_is_idempotent(db, make_trip):
    trip = make_trip(days_ahead=1)
    now = trip.departs_at + timedelta(minutes=5)
    scheduler = DepartureScheduler(db)

    assert scheduler.sweep(now=now) == [trip.id]
    assert scheduler.sweep(now=now) == []
    db.refresh(trip)
    assert trip.has_departed is True
    assert trip.departed_at == now


def test_maintenance_pass_sweeps_and_reaps(session_factory, db, bookings, make_trip):
    trip = make_trip(days_ahead=2)
    stale = bookings.create_booking(
        booking_request(trip.id, ["1A"]), now=datetime.now() - timedelta(hours=2)
    )
    loop = MaintenanceLoop(session_factory=session_factory, interval_seconds=1)

    result = loop.run_once(now=trip.departs_at + timedelta(minutes=1))

    assert result == {"departed_trip_ids": [trip.id], "cancelled_booking_ids": [stale.id]}


def test_maintenance_loop_start_and_stop(session_factory):
    async def run():
        loop = MaintenanceLoop(session_factory=session_factory, interval_seconds=0.01)
        loop.start()
        await asyncio.sleep(0.05)
        await loop.stop()
        return loop

    loop = asyncio.run(run())
    assert loop._running is False
    assert loop._task is None
