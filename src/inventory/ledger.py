from typing import Dict, Iterable, List, Optional
from datetime import datetime
from contextlib import contextmanager
import logging
import threading

from sqlalchemy import update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models import Trip, BookingSeat
from src.exceptions import TripNotFound, TripDeparted, SeatUnavailable, InvalidRequest, Conflict

logger = logging.getLogger(__name__)


class TripLockRegistry:
    """Process-wide re-entrant locks, one per trip id"""

    def __init__(self):
        self._locks: Dict[int, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, trip_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(trip_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[trip_id] = lock
            return lock

    @contextmanager
    def hold(self, *trip_ids: Optional[int]):
        """Hold the locks of every given trip, acquired in ascending id order"""
        ordered = sorted({trip_id for trip_id in trip_ids if trip_id is not None})
        acquired = []
        try:
            for trip_id in ordered:
                lock = self.lock_for(trip_id)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


trip_locks = TripLockRegistry()


def normalize_seat_numbers(seat_numbers: Iterable) -> List[str]:
    seats = [str(seat).strip() for seat in seat_numbers or []]
    if not seats or any(not seat for seat in seats):
        raise InvalidRequest(reason="seat_numbers_required")
    duplicates = sorted({seat for seat in seats if seats.count(seat) > 1})
    if duplicates:
        raise InvalidRequest(reason="duplicate_seat_numbers", seat_numbers=duplicates)
    return seats


class InventoryLedger:
    """
    Sole writer of ``Trip.available_seats`` and of held-seat rows.

    The ledger flushes but never commits: the caller owns the transaction and
    should hold ``locks.hold(trip_id)`` until it commits or rolls back.
    """

    def __init__(self, db: Session, locks: TripLockRegistry = trip_locks):
        self.db = db
        self.locks = locks

    def reserve_seats(
        self,
        trip_id: int,
        seat_numbers: Iterable,
        booking_id: int,
        is_return: bool = False,
        now: Optional[datetime] = None
    ) -> Trip:
        """Hold every requested seat for ``booking_id`` or none of them"""

        seats = normalize_seat_numbers(seat_numbers)
        now = now or datetime.now()

        with self.locks.hold(trip_id):
            trip = self._get_trip_for_update(trip_id)
            if trip is None:
                raise TripNotFound(trip_id=trip_id)

            # Re-check the clock, the departure sweep may not have run yet
            if trip.has_departed or trip.departs_at <= now:
                logger.warning("Rejected reservation on departed trip %s", trip_id)
                raise TripDeparted(trip_id=trip_id, departs_at=trip.departs_at.isoformat())

            taken = sorted(
                row.seat_number for row in self.db.query(BookingSeat.seat_number).filter(
                    BookingSeat.trip_id == trip_id,
                    BookingSeat.seat_number.in_(seats)
                )
            )
            if taken:
                logger.warning("Seats %s already held on trip %s", taken, trip_id)
                raise SeatUnavailable(trip_id=trip_id, seat_numbers=taken, reason="already_held")

            if len(seats) > trip.available_seats:
                raise SeatUnavailable(
                    trip_id=trip_id,
                    reason="insufficient_capacity",
                    requested=len(seats),
                    available=trip.available_seats
                )

            # Conditional decrement: never drives the counter below zero
            result = self.db.execute(
                update(Trip)
                .where(
                    Trip.id == trip_id,
                    Trip.available_seats >= len(seats),
                    Trip.has_departed.is_(False)
                )
                .values(available_seats=Trip.available_seats - len(seats))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise SeatUnavailable(trip_id=trip_id, reason="capacity_changed", requested=len(seats))

            self.db.add_all([
                BookingSeat(
                    trip_id=trip_id,
                    booking_id=booking_id,
                    seat_number=seat,
                    is_return=is_return
                )
                for seat in seats
            ])
            try:
                self.db.flush()
            except IntegrityError:
                # Another process won the race for one of these seats
                raise SeatUnavailable(trip_id=trip_id, seat_numbers=seats, reason="already_held")

            self.db.refresh(trip)

        logger.info("Reserved seats %s on trip %s for booking %s", seats, trip_id, booking_id)
        return trip

    def release_seats(
        self,
        trip_id: int,
        seat_numbers: Iterable,
        booking_id: Optional[int] = None
    ) -> int:
        """Release held seats; seats that are not held are ignored. Returns the count released."""

        seats = [str(seat).strip() for seat in seat_numbers or []]
        if not seats:
            return 0

        with self.locks.hold(trip_id):
            query = self.db.query(BookingSeat).filter(
                BookingSeat.trip_id == trip_id,
                BookingSeat.seat_number.in_(seats)
            )
            if booking_id is not None:
                query = query.filter(BookingSeat.booking_id == booking_id)

            rows = query.all()
            for row in rows:
                self.db.delete(row)

            released = len(rows)
            if released:
                self.db.execute(
                    update(Trip)
                    .where(Trip.id == trip_id)
                    .values(available_seats=Trip.available_seats + released)
                    .execution_options(synchronize_session=False)
                )
            # Deletes must reach the database before any re-insert of the same seat
            self.db.flush()

            trip = self.db.get(Trip, trip_id)
            if trip is not None:
                self.db.refresh(trip)

        if released:
            logger.info("Released %d seat(s) on trip %s", released, trip_id)
        return released

    def held_seat_numbers(self, trip_id: int, booking_id: Optional[int] = None) -> List[str]:
        query = self.db.query(BookingSeat.seat_number).filter(BookingSeat.trip_id == trip_id)
        if booking_id is not None:
            query = query.filter(BookingSeat.booking_id == booking_id)
        return sorted(row.seat_number for row in query)

    def held_count(self, trip_id: int) -> int:
        return self.db.query(func.count(BookingSeat.id)).filter(BookingSeat.trip_id == trip_id).scalar() or 0

    def resize_capacity(self, trip: Trip, new_total: int) -> Trip:
        """Change ``total_seats`` while keeping available + held == total"""

        if new_total < 1:
            raise InvalidRequest(reason="total_seats_must_be_positive", total_seats=new_total)

        with self.locks.hold(trip.id):
            trip = self._get_trip_for_update(trip.id)
            held = self.held_count(trip.id)
            if new_total < held:
                raise Conflict(
                    trip_id=trip.id,
                    reason="capacity_below_held_seats",
                    held=held,
                    total_seats=new_total
                )
            trip.total_seats = new_total
            trip.available_seats = new_total - held
            self.db.flush()

        return trip

    def _get_trip_for_update(self, trip_id: int) -> Optional[Trip]:
        return (
            self.db.query(Trip)
            .filter(Trip.id == trip_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
