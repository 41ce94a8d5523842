from typing import FrozenSet, List, Optional, Iterable, Tuple
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import secrets
import string

from sqlalchemy import update
from sqlalchemy.orm import Session

from src.config import settings
from src.models import Trip, Booking, BookingSeat, Passenger
from src.inventory import InventoryLedger, normalize_seat_numbers
from src.exceptions import (
    TripNotFound, BookingNotFound, PassengerNotFound, ChangeWindowClosed,
    InvalidState, InvalidRequest
)
from src.bookings.schemas import (
    BookingCreateRequest, BookingStatus, PaymentStatus, BookingLeg, ScanOutcome,
    ScanResult, BookingResponse, PassengerResponse, PassengerInfo,
    BookingSearchFilters, BookingLookupResponse, TicketValidationResponse
)
from src.bookings.notifications import (
    BookingEvent, BookingEventPublisher, booking_events,
    BOOKING_CONFIRMED, BOOKING_CANCELLED, BOOKING_RESCHEDULED
)

logger = logging.getLogger(__name__)

LIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
LOCK_ATTEMPTS = 3
_REFERENCE_ALPHABET = string.ascii_lowercase + string.digits


def generate_order_reference(now: Optional[datetime] = None) -> str:
    """Human-facing order reference, e.g. RT-1718000000000-k3x9qa"""
    now = now or datetime.now()
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(6))
    return f"RT-{int(now.timestamp() * 1000)}-{suffix}"


class BookingService:
    """
    Booking lifecycle: pending -> confirmed -> cancelled, pending -> cancelled.

    Seat holds are delegated to the InventoryLedger. Every multi-step change
    runs in one transaction while the affected trips' locks are held, and is
    rolled back as a whole if any step fails.
    """

    def __init__(
        self,
        db: Session,
        ledger: Optional[InventoryLedger] = None,
        publisher: Optional[BookingEventPublisher] = None,
        change_window_hours: Optional[int] = None
    ):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)
        self.publisher = publisher or booking_events
        if change_window_hours is None:
            change_window_hours = settings.CHANGE_WINDOW_HOURS
        self.change_window = timedelta(hours=change_window_hours)

    # Creation and payment
    def create_booking(self, request: BookingCreateRequest, now: Optional[datetime] = None) -> Booking:
        """Hold the seats of every requested leg and open a pending booking"""

        now = now or datetime.now()
        outbound_seats = normalize_seat_numbers(request.seat_numbers)
        return_seats: List[str] = []
        if request.return_trip_id is not None:
            if request.return_trip_id == request.trip_id:
                raise InvalidRequest(reason="return_trip_matches_outbound", trip_id=request.trip_id)
            return_seats = normalize_seat_numbers(request.return_seat_numbers)
        self._check_passenger_seats(request.passengers, outbound_seats, return_seats)

        with self.ledger.locks.hold(request.trip_id, request.return_trip_id):
            try:
                for trip_id in (request.trip_id, request.return_trip_id):
                    if trip_id is not None and self.db.get(Trip, trip_id) is None:
                        raise TripNotFound(trip_id=trip_id)

                booking = Booking(
                    order_reference=generate_order_reference(now),
                    trip_id=request.trip_id,
                    return_trip_id=request.return_trip_id,
                    contact_name=request.contact_name.strip(),
                    contact_email=request.contact_email,
                    contact_phone=request.contact_phone,
                    contact_id_number=request.contact_id_number,
                    total_price=Decimal("0"),
                    currency=settings.CURRENCY,
                    promo_code=request.promo_code,
                    discount_amount=request.discount_amount,
                    agent_id=request.agent_id,
                    consultant_id=request.consultant_id,
                    booking_status=BookingStatus.PENDING.value,
                    payment_status=PaymentStatus.PENDING.value,
                    scanned=False,
                    created_at=now
                )
                self.db.add(booking)
                self.db.flush()

                outbound = self.ledger.reserve_seats(request.trip_id, outbound_seats, booking.id, now=now)
                total = Decimal(outbound.effective_fare) * len(outbound_seats)

                if request.return_trip_id is not None:
                    inbound = self.ledger.reserve_seats(
                        request.return_trip_id, return_seats, booking.id, is_return=True, now=now
                    )
                    total += Decimal(inbound.effective_fare) * len(return_seats)

                booking.total_price = max(total - request.discount_amount, Decimal("0"))
                for passenger in request.passengers:
                    booking.passengers.append(Passenger(
                        title=passenger.title,
                        name=passenger.name.strip(),
                        seat_number=passenger.seat_number.strip(),
                        is_return=passenger.is_return
                    ))

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        logger.info(
            "Created booking %s (%s) trip=%s return_trip=%s seats=%d",
            booking.id, booking.order_reference, booking.trip_id,
            booking.return_trip_id, len(outbound_seats) + len(return_seats)
        )
        return booking

    def confirm_booking(
        self,
        booking_id: int,
        payment_reference: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """Mark a pending booking as paid; held seats are untouched"""

        now = now or datetime.now()
        booking = self.get_booking(booking_id)
        values = {
            "booking_status": BookingStatus.CONFIRMED.value,
            "payment_status": PaymentStatus.PAID.value,
            "confirmed_at": now
        }
        if payment_reference:
            values["payment_reference"] = payment_reference

        if not self._transition(booking.id, (BookingStatus.PENDING.value,), **values):
            self.db.rollback()
            self.db.refresh(booking)
            raise InvalidState(
                booking_id=booking.id,
                booking_status=booking.booking_status,
                requested=BookingStatus.CONFIRMED.value
            )
        self.db.commit()
        self.db.refresh(booking)

        logger.info("Confirmed booking %s (%s)", booking.id, booking.order_reference)
        self._publish(BOOKING_CONFIRMED, booking)
        return booking

    def fail_payment(
        self,
        booking_id: int,
        reason: str = "payment_failed",
        now: Optional[datetime] = None
    ) -> Booking:
        """Payment gateway reported failure: cancel a pending booking and free its seats"""

        booking = self.get_booking(booking_id)
        return self._cancel(
            booking,
            reason=reason,
            from_statuses=(BookingStatus.PENDING.value,),
            payment_status=PaymentStatus.FAILED.value,
            now=now
        )

    def attach_payment_reference(self, booking_id: int, payment_reference: str) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.booking_status != BookingStatus.PENDING.value:
            raise InvalidState(booking_id=booking.id, booking_status=booking.booking_status)
        booking.payment_reference = payment_reference
        self.db.commit()
        self.db.refresh(booking)
        return booking

    # Changes
    def cancel_booking(
        self,
        booking_id: int,
        reason: Optional[str] = None,
        operator_override: bool = False,
        now: Optional[datetime] = None
    ) -> Booking:
        """Cancel a live booking and release every leg's seats"""

        booking = self.get_booking(booking_id)
        if booking.booking_status == BookingStatus.CANCELLED.value:
            raise InvalidState(
                booking_id=booking.id,
                booking_status=booking.booking_status,
                requested=BookingStatus.CANCELLED.value
            )

        return self._cancel(
            booking,
            reason=reason,
            from_statuses=LIVE_STATUSES,
            check_window=not operator_override,
            now=now
        )

    def reschedule_booking(
        self,
        booking_id: int,
        new_trip_id: int,
        new_seat_numbers: Optional[Iterable[str]] = None,
        leg: BookingLeg = BookingLeg.OUTBOUND,
        operator_override: bool = False,
        now: Optional[datetime] = None
    ) -> Booking:
        """Move one leg to another trip; on failure the original seats are kept"""

        now = now or datetime.now()
        leg = BookingLeg(leg)
        is_return = leg == BookingLeg.RETURN
        booking = self.get_booking(booking_id)
        self._check_reschedule_target(booking, is_return, new_trip_id)
        old_trip_id = booking.return_trip_id if is_return else booking.trip_id

        with self.ledger.locks.hold(old_trip_id, new_trip_id):
            try:
                # Everything read before the locks were taken may be stale
                self._reload(booking)
                self._check_reschedule_target(booking, is_return, new_trip_id)
                current_trip_id = booking.return_trip_id if is_return else booking.trip_id
                if current_trip_id != old_trip_id:
                    raise InvalidState(
                        booking_id=booking.id,
                        reason="booking_changed_concurrently",
                        trip_id=current_trip_id
                    )

                if not operator_override:
                    self._check_change_window(booking, self.db.get(Trip, old_trip_id), now)

                old_seats = [
                    row.seat_number for row in self.db.query(BookingSeat.seat_number).filter(
                        BookingSeat.booking_id == booking.id,
                        BookingSeat.trip_id == old_trip_id
                    ).order_by(BookingSeat.id)
                ]
                if new_seat_numbers is None:
                    new_seats = list(old_seats)
                else:
                    new_seats = normalize_seat_numbers(new_seat_numbers)
                if len(new_seats) != len(old_seats):
                    raise InvalidRequest(
                        booking_id=booking.id,
                        reason="seat_count_mismatch",
                        held=len(old_seats),
                        requested=len(new_seats)
                    )

                self.ledger.release_seats(old_trip_id, old_seats, booking_id=booking.id)
                self.ledger.reserve_seats(new_trip_id, new_seats, booking.id, is_return=is_return, now=now)

                seat_map = dict(zip(old_seats, new_seats))
                passengers = self.db.query(Passenger).filter(
                    Passenger.booking_id == booking.id,
                    Passenger.is_return == is_return
                ).all()
                for passenger in passengers:
                    passenger.seat_number = seat_map.get(passenger.seat_number, passenger.seat_number)

                if is_return:
                    booking.return_trip_id = new_trip_id
                else:
                    booking.trip_id = new_trip_id
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        logger.info(
            "Rescheduled booking %s %s leg: trip %s -> %s",
            booking.id, leg.value, old_trip_id, new_trip_id
        )
        self._publish(BOOKING_RESCHEDULED, booking)
        return booking

    def reap_expired_pending_bookings(
        self,
        older_than: Optional[timedelta] = None,
        now: Optional[datetime] = None
    ) -> Tuple[List[int], datetime]:
        """Cancel pending bookings created before now - older_than. Returns (ids, cutoff)"""

        now = now or datetime.now()
        if older_than is None:
            older_than = timedelta(minutes=settings.PENDING_BOOKING_TTL_MINUTES)
        cutoff = now - older_than

        candidate_ids = [
            row.id for row in self.db.query(Booking.id).filter(
                Booking.booking_status == BookingStatus.PENDING.value,
                Booking.created_at < cutoff
            ).order_by(Booking.created_at)
        ]

        reaped = []
        for booking_id in candidate_ids:
            booking = self.db.get(Booking, booking_id)
            try:
                self._cancel(
                    booking,
                    reason="payment_timeout",
                    from_statuses=(BookingStatus.PENDING.value,),
                    payment_status=PaymentStatus.CANCELLED.value,
                    now=now
                )
                reaped.append(booking_id)
            except InvalidState:
                # Confirmed or cancelled since the candidate query
                continue

        if reaped:
            logger.info("Reaped %d expired pending booking(s): %s", len(reaped), reaped)
        return reaped, cutoff

    # Boarding
    def mark_scanned(
        self,
        booking_id: int,
        scanner_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> ScanResult:
        """Record the boarding scan once; a repeat returns the original scan"""

        now = now or datetime.now()
        booking = self.get_booking(booking_id)

        result = self.db.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.booking_status == BookingStatus.CONFIRMED.value,
                Booking.scanned.is_(False)
            )
            .values(scanned=True, last_scanned=now, scanner_id=scanner_id)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(booking)

        if result.rowcount == 1:
            logger.info("Booking %s scanned by %s", booking.order_reference, scanner_id)
            return ScanResult(
                outcome=ScanOutcome.SCANNED,
                booking_id=booking.id,
                order_reference=booking.order_reference,
                scanned_at=booking.last_scanned,
                scanner_id=booking.scanner_id
            )

        if booking.booking_status != BookingStatus.CONFIRMED.value:
            raise InvalidState(
                booking_id=booking.id,
                booking_status=booking.booking_status,
                reason="booking_not_confirmed"
            )

        return ScanResult(
            outcome=ScanOutcome.ALREADY_SCANNED,
            booking_id=booking.id,
            order_reference=booking.order_reference,
            scanned_at=booking.last_scanned,
            scanner_id=booking.scanner_id
        )

    def board_passenger(self, passenger_id: int, now: Optional[datetime] = None) -> Passenger:
        passenger = self.db.get(Passenger, passenger_id)
        if passenger is None:
            raise PassengerNotFound(passenger_id=passenger_id)
        if passenger.booking.booking_status != BookingStatus.CONFIRMED.value:
            raise InvalidState(
                booking_id=passenger.booking_id,
                booking_status=passenger.booking.booking_status,
                reason="booking_not_confirmed"
            )
        if not passenger.boarded:
            passenger.boarded = True
            passenger.boarded_at = now or datetime.now()
            self.db.commit()
            self.db.refresh(passenger)
        return passenger

    # Lookups
    def get_booking(self, booking_id: int) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound(booking_id=booking_id)
        return booking

    def lookup_booking_by_reference(self, order_reference: str) -> Booking:
        reference = (order_reference or "").strip()
        booking = self.db.query(Booking).filter(Booking.order_reference == reference).first()
        if booking is None:
            raise BookingNotFound(order_reference=reference)
        return booking

    def find_customer_booking(self, order_reference: str, contact_email: str) -> Booking:
        """Reference lookup that also requires the booking's contact email"""
        booking = self.lookup_booking_by_reference(order_reference)
        if booking.contact_email.lower() != (contact_email or "").strip().lower():
            raise BookingNotFound(order_reference=booking.order_reference)
        return booking

    def customer_lookup(
        self,
        order_reference: str,
        contact_email: str,
        now: Optional[datetime] = None
    ) -> BookingLookupResponse:
        now = now or datetime.now()
        booking = self.find_customer_booking(order_reference, contact_email)
        can_edit = (
            booking.booking_status in LIVE_STATUSES
            and self._change_window_open(self.db.get(Trip, booking.trip_id), now)
        )
        return BookingLookupResponse(booking=self.to_response(booking), can_edit=can_edit)

    def validate_ticket(
        self,
        order_reference: str,
        trip_id: int,
        now: Optional[datetime] = None
    ) -> TicketValidationResponse:
        """Check a scanned reference against the trip departing today"""

        now = now or datetime.now()
        booking = self.lookup_booking_by_reference(order_reference)
        if trip_id not in (booking.trip_id, booking.return_trip_id):
            raise BookingNotFound(order_reference=booking.order_reference, trip_id=trip_id)

        trip = self.db.get(Trip, trip_id)
        if trip.departure_date != now.date():
            raise BookingNotFound(
                order_reference=booking.order_reference,
                trip_id=trip_id,
                reason="no_booking_for_trip_today"
            )

        reason = None
        if booking.booking_status != BookingStatus.CONFIRMED.value:
            reason = f"booking_{booking.booking_status}"
        elif booking.payment_status != PaymentStatus.PAID.value:
            reason = f"payment_{booking.payment_status}"

        return TicketValidationResponse(
            valid=reason is None,
            reason=reason,
            booking=self.to_response(booking)
        )

    def list_bookings(
        self,
        filters: Optional[BookingSearchFilters] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Booking]:
        query = self.db.query(Booking)
        if filters:
            if filters.booking_status:
                query = query.filter(Booking.booking_status == filters.booking_status.value)
            if filters.payment_status:
                query = query.filter(Booking.payment_status == filters.payment_status.value)
            if filters.trip_id:
                query = query.filter(
                    (Booking.trip_id == filters.trip_id) | (Booking.return_trip_id == filters.trip_id)
                )
            if filters.agent_id:
                query = query.filter(Booking.agent_id == filters.agent_id)
            if filters.consultant_id:
                query = query.filter(Booking.consultant_id == filters.consultant_id)
            if filters.order_reference:
                query = query.filter(Booking.order_reference.ilike(f"%{filters.order_reference}%"))
            if filters.contact_email:
                query = query.filter(Booking.contact_email.ilike(f"%{filters.contact_email}%"))

        return query.order_by(Booking.created_at.desc()).offset(skip).limit(limit).all()

    def to_response(self, booking: Booking) -> BookingResponse:
        seats = self.db.query(BookingSeat).filter(
            BookingSeat.booking_id == booking.id
        ).order_by(BookingSeat.id).all()

        return BookingResponse(
            id=booking.id,
            order_reference=booking.order_reference,
            trip_id=booking.trip_id,
            return_trip_id=booking.return_trip_id,
            seat_numbers=[s.seat_number for s in seats if not s.is_return],
            return_seat_numbers=[s.seat_number for s in seats if s.is_return],
            passengers=[PassengerResponse.model_validate(p) for p in booking.passengers],
            contact_name=booking.contact_name,
            contact_email=booking.contact_email,
            contact_phone=booking.contact_phone,
            total_price=booking.total_price,
            currency=booking.currency,
            promo_code=booking.promo_code,
            discount_amount=booking.discount_amount,
            booking_status=booking.booking_status,
            payment_status=booking.payment_status,
            payment_reference=booking.payment_reference,
            cancellation_reason=booking.cancellation_reason,
            scanned=booking.scanned,
            last_scanned=booking.last_scanned,
            scanner_id=booking.scanner_id,
            agent_id=booking.agent_id,
            consultant_id=booking.consultant_id,
            created_at=booking.created_at,
            confirmed_at=booking.confirmed_at,
            cancelled_at=booking.cancelled_at
        )

    # Internals
    def _cancel(
        self,
        booking: Booking,
        reason: Optional[str],
        from_statuses: Tuple[str, ...],
        payment_status: Optional[str] = None,
        check_window: bool = False,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Cancel under the locks of every trip the booking holds seats on.

        The booking is re-read once the locks are held. If a concurrent
        reschedule moved it onto other trips meanwhile, the locks are taken
        again for the new set. ``payment_status=None`` keeps ``paid`` and
        turns anything else into ``cancelled``.
        """

        now = now or datetime.now()
        for _ in range(LOCK_ATTEMPTS):
            trip_ids = self._trips_touched(booking)
            with self.ledger.locks.hold(*trip_ids):
                try:
                    self._reload(booking)
                    if self._trips_touched(booking) != trip_ids:
                        self.db.rollback()
                        continue

                    if booking.booking_status not in from_statuses:
                        raise InvalidState(
                            booking_id=booking.id,
                            booking_status=booking.booking_status,
                            requested=BookingStatus.CANCELLED.value
                        )
                    if check_window:
                        self._check_change_window(booking, self.db.get(Trip, booking.trip_id), now)

                    new_payment_status = payment_status
                    if new_payment_status is None:
                        new_payment_status = booking.payment_status
                        if new_payment_status != PaymentStatus.PAID.value:
                            new_payment_status = PaymentStatus.CANCELLED.value

                    moved = self._transition(
                        booking.id,
                        from_statuses,
                        booking_status=BookingStatus.CANCELLED.value,
                        payment_status=new_payment_status,
                        cancellation_reason=reason,
                        cancelled_at=now
                    )
                    if not moved:
                        raise InvalidState(
                            booking_id=booking.id,
                            booking_status=booking.booking_status,
                            requested=BookingStatus.CANCELLED.value
                        )
                    self._release_all(booking)
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
            break
        else:
            raise InvalidState(booking_id=booking.id, reason="booking_changed_concurrently")

        self.db.refresh(booking)
        logger.info("Cancelled booking %s (%s) reason=%s", booking.id, booking.order_reference, reason)
        self._publish(BOOKING_CANCELLED, booking)
        return booking

    def _release_all(self, booking: Booking) -> int:
        held = self.db.query(BookingSeat.trip_id, BookingSeat.seat_number).filter(
            BookingSeat.booking_id == booking.id
        ).all()

        by_trip = {}
        for row in held:
            by_trip.setdefault(row.trip_id, []).append(row.seat_number)

        released = 0
        for trip_id, seats in by_trip.items():
            released += self.ledger.release_seats(trip_id, seats, booking_id=booking.id)
        return released

    def _trips_touched(self, booking: Booking) -> FrozenSet[int]:
        """Trips on either leg plus any trip the booking still holds seats on"""
        held = self.db.query(BookingSeat.trip_id).filter(
            BookingSeat.booking_id == booking.id
        ).distinct()
        trip_ids = {row.trip_id for row in held}
        trip_ids.update(t for t in (booking.trip_id, booking.return_trip_id) if t is not None)
        return frozenset(trip_ids)

    def _reload(self, booking: Booking) -> None:
        self.db.expire(booking)
        self.db.refresh(booking, with_for_update=True)

    def _transition(self, booking_id: int, from_statuses: Iterable[str], **values) -> bool:
        """Conditional status change; False when the booking is no longer in from_statuses"""
        result = self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.booking_status.in_(list(from_statuses)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _check_reschedule_target(self, booking: Booking, is_return: bool, new_trip_id: int) -> None:
        if booking.booking_status not in LIVE_STATUSES:
            raise InvalidState(booking_id=booking.id, booking_status=booking.booking_status)
        if is_return and booking.return_trip_id is None:
            raise InvalidRequest(booking_id=booking.id, reason="booking_has_no_return_leg")
        other_trip_id = booking.trip_id if is_return else booking.return_trip_id
        if new_trip_id == other_trip_id:
            raise InvalidRequest(booking_id=booking.id, reason="legs_must_use_different_trips")

    def _change_window_open(self, trip: Trip, now: datetime) -> bool:
        return trip.departs_at - now >= self.change_window

    def _check_change_window(self, booking: Booking, trip: Trip, now: datetime) -> None:
        if not self._change_window_open(trip, now):
            raise ChangeWindowClosed(
                booking_id=booking.id,
                trip_id=trip.id,
                departs_at=trip.departs_at.isoformat(),
                window_hours=int(self.change_window.total_seconds() // 3600)
            )

    def _check_passenger_seats(
        self,
        passengers: List[PassengerInfo],
        outbound_seats: List[str],
        return_seats: List[str]
    ) -> None:
        """Each passenger sits on a held seat of their leg, one passenger per seat"""

        assigned = set()
        for passenger in passengers:
            seat = passenger.seat_number.strip()
            leg_seats = return_seats if passenger.is_return else outbound_seats
            if seat not in leg_seats:
                raise InvalidRequest(
                    reason="passenger_seat_not_held",
                    seat_number=seat,
                    is_return=passenger.is_return
                )
            key = (passenger.is_return, seat)
            if key in assigned:
                raise InvalidRequest(reason="seat_assigned_twice", seat_number=seat)
            assigned.add(key)

    def _publish(self, name: str, booking: Booking) -> None:
        self.publisher.publish(BookingEvent(name=name, booking=self.to_response(booking)))
