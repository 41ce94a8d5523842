from typing import List, Optional, Tuple
from datetime import datetime, date
import logging

from sqlalchemy import update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models import Trip, Booking, BookingSeat
from src.inventory import InventoryLedger
from src.exceptions import TripNotFound, TripDeparted, InvalidRequest, Conflict
from src.trips.schemas import (
    TripCreate, TripUpdate, TripResponse, SeatMap, TripManifest,
    ManifestBooking, ManifestPassenger
)

logger = logging.getLogger(__name__)

LIVE_STATUSES = ("pending", "confirmed")


class TripCatalogService:
    """Service for creating, editing and querying scheduled trips"""

    def __init__(self, db: Session, ledger: Optional[InventoryLedger] = None):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)

    def create_trip(self, trip_data: TripCreate) -> Trip:
        """Create a new trip with every seat available"""

        available = trip_data.available_seats
        if available is None:
            available = trip_data.total_seats
        if available > trip_data.total_seats:
            raise InvalidRequest(
                reason="available_exceeds_total",
                available_seats=available,
                total_seats=trip_data.total_seats
            )
        if available < trip_data.total_seats:
            # A new trip has no holds to account for the difference
            raise Conflict(
                reason="available_below_total_without_holds",
                available_seats=available,
                total_seats=trip_data.total_seats
            )

        trip = Trip(
            **trip_data.model_dump(exclude={"available_seats"}),
            available_seats=available,
            has_departed=False
        )

        try:
            self.db.add(trip)
            self.db.commit()
            self.db.refresh(trip)
        except IntegrityError:
            self.db.rollback()
            raise Conflict(
                reason="duplicate_trip",
                route_name=trip_data.route_name,
                departure_date=trip_data.departure_date.isoformat(),
                departure_time=trip_data.departure_time.isoformat()
            )

        logger.info("Created trip %s (%s on %s)", trip.id, trip.route_name, trip.departure_date)
        return trip

    def get_trip(self, trip_id: int) -> Trip:
        trip = self.db.get(Trip, trip_id)
        if trip is None:
            raise TripNotFound(trip_id=trip_id)
        return trip

    def list_trips(
        self,
        route_name: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_departed: bool = True,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> Tuple[List[Trip], int]:
        """Trips matching the filters, ordered by departure"""

        query = self.db.query(Trip)
        if route_name and route_name != "all":
            query = query.filter(Trip.route_name == route_name)
        if start_date:
            query = query.filter(Trip.departure_date >= start_date)
        if end_date:
            query = query.filter(Trip.departure_date <= end_date)
        if not include_departed:
            query = query.filter(Trip.has_departed.is_(False))

        total = query.count()
        query = query.order_by(Trip.departure_date, Trip.departure_time, Trip.id).offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all(), total

    def update_trip(
        self,
        trip_id: int,
        update_data: TripUpdate,
        operator_override: bool = False
    ) -> Trip:
        """Apply a partial edit; departed trips need an operator override"""

        changes = update_data.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidRequest(reason="no_fields_to_update")

        trip = self.get_trip(trip_id)
        if trip.has_departed and not operator_override:
            raise TripDeparted(trip_id=trip_id)

        try:
            new_total = changes.pop("total_seats", None)
            if new_total is not None and new_total != trip.total_seats:
                trip = self.ledger.resize_capacity(trip, new_total)

            for field, value in changes.items():
                setattr(trip, field, value)

            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict(trip_id=trip_id, reason="duplicate_trip")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(trip)
        logger.info("Updated trip %s fields=%s", trip_id, sorted(update_data.model_dump(exclude_unset=True)))
        return trip

    def delete_trip(self, trip_id: int) -> None:
        """Delete a trip that no live booking references"""

        trip = self.get_trip(trip_id)
        references = self.db.query(Booking).filter(
            or_(Booking.trip_id == trip_id, Booking.return_trip_id == trip_id)
        ).all()

        live = [b.id for b in references if b.booking_status in LIVE_STATUSES]
        if live:
            raise Conflict(trip_id=trip_id, reason="trip_has_active_bookings", booking_ids=live)

        try:
            # Cancelled bookings go with the trip
            for booking in references:
                self.db.delete(booking)
            self.db.delete(trip)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Deleted trip %s (%d cancelled booking(s) removed)", trip_id, len(references))

    def mark_departed(self, trip_id: int, now: Optional[datetime] = None) -> Tuple[Trip, bool]:
        """Flag a trip as departed. Returns (trip, changed); already departed is a no-op"""

        now = now or datetime.now()
        self.get_trip(trip_id)

        result = self.db.execute(
            update(Trip)
            .where(Trip.id == trip_id, Trip.has_departed.is_(False))
            .values(has_departed=True, departed_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        trip = self.get_trip(trip_id)
        self.db.refresh(trip)
        changed = result.rowcount == 1
        if changed:
            logger.info("Trip %s marked as departed", trip_id)
        return trip, changed

    def get_last_scheduled_date(self) -> Optional[date]:
        return self.db.query(func.max(Trip.departure_date)).scalar()

    def get_seat_map(self, trip_id: int) -> SeatMap:
        trip = self.get_trip(trip_id)
        return SeatMap(
            trip_id=trip.id,
            total_seats=trip.total_seats,
            available_seats=trip.available_seats,
            held_seats=self.ledger.held_seat_numbers(trip.id)
        )

    def get_manifest(self, trip_id: int) -> TripManifest:
        """Live bookings travelling on this trip, outbound or return"""

        trip = self.get_trip(trip_id)
        bookings = self.db.query(Booking).filter(
            or_(Booking.trip_id == trip_id, Booking.return_trip_id == trip_id),
            Booking.booking_status.in_(LIVE_STATUSES)
        ).order_by(Booking.created_at.desc()).all()

        entries = []
        for booking in bookings:
            is_return = booking.trip_id != trip_id
            seats = sorted(
                row.seat_number for row in self.db.query(BookingSeat.seat_number).filter(
                    BookingSeat.booking_id == booking.id,
                    BookingSeat.trip_id == trip_id
                )
            )
            entries.append(ManifestBooking(
                booking_id=booking.id,
                order_reference=booking.order_reference,
                contact_name=booking.contact_name,
                contact_phone=booking.contact_phone,
                booking_status=booking.booking_status,
                payment_status=booking.payment_status,
                scanned=booking.scanned,
                seats=seats,
                passengers=[
                    ManifestPassenger.model_validate(p)
                    for p in booking.passengers if p.is_return == is_return
                ]
            ))

        return TripManifest(
            trip=TripResponse.model_validate(trip),
            bookings=entries,
            total_bookings=len(entries),
            total_booked_seats=sum(len(e.seats) for e in entries)
        )
