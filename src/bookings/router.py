from fastapi import APIRouter, Depends, HTTPException, Header, Query, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import timedelta

from src.config import settings
from src.database import get_db
from src.auth.dependencies import require_operator
from src.bookings.schemas import (
    BookingCreateRequest, BookingResponse, BookingLookupRequest, BookingLookupResponse,
    BookingCancellationRequest, CustomerCancellationRequest, BookingRescheduleRequest,
    CustomerRescheduleRequest, CheckoutRequest, CheckoutSession, PaymentConfirmationRequest,
    ScanRequest, ScanResult, BookingSearchFilters, BookingStatus, PaymentStatus,
    TicketValidationResponse, PassengerResponse, ReapResult
)
from src.bookings.booking_service import BookingService
from src.bookings.idempotency import IdempotencyCache, request_fingerprint
from src.bookings.ticket_service import render_reference_qr
from src.exceptions import InvalidState
from src.payments.stripe_service import StripePaymentService, PaymentGatewayNotConfigured

router = APIRouter()
admin_router = APIRouter()

booking_request_cache = IdempotencyCache(ttl=settings.IDEMPOTENCY_TTL_SECONDS)

# Customer endpoints
@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreateRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db)
):
    """Hold seats and open a pending booking awaiting payment"""

    fingerprint = request_fingerprint(request)
    if idempotency_key:
        cached = booking_request_cache.begin(idempotency_key, fingerprint)
        if cached is not None:
            return cached

    service = BookingService(db)
    try:
        response = service.to_response(service.create_booking(request))
    except Exception:
        if idempotency_key:
            booking_request_cache.abandon(idempotency_key)
        raise

    if idempotency_key:
        booking_request_cache.complete(idempotency_key, fingerprint, response)
    return response

@router.get("/reference/{order_reference}", response_model=BookingResponse)
def get_booking_by_reference(order_reference: str, db: Session = Depends(get_db)):
    service = BookingService(db)
    return service.to_response(service.lookup_booking_by_reference(order_reference))

@router.get("/reference/{order_reference}/qr")
def get_booking_qr(order_reference: str, db: Session = Depends(get_db)):
    """QR code of the order reference for the printed or mobile ticket"""
    booking = BookingService(db).lookup_booking_by_reference(order_reference)
    return Response(content=render_reference_qr(booking.order_reference), media_type="image/png")

@router.post("/lookup", response_model=BookingLookupResponse)
def lookup_booking(request: BookingLookupRequest, db: Session = Depends(get_db)):
    """Find a booking by reference and contact email"""
    return BookingService(db).customer_lookup(request.order_reference, request.contact_email)

@router.post("/reference/{order_reference}/cancel", response_model=BookingResponse)
def cancel_own_booking(
    order_reference: str,
    request: CustomerCancellationRequest,
    db: Session = Depends(get_db)
):
    service = BookingService(db)
    booking = service.find_customer_booking(order_reference, request.contact_email)
    booking = service.cancel_booking(booking.id, reason=request.reason or "customer_cancelled")
    return service.to_response(booking)

@router.post("/reference/{order_reference}/reschedule", response_model=BookingResponse)
def reschedule_own_booking(
    order_reference: str,
    request: CustomerRescheduleRequest,
    db: Session = Depends(get_db)
):
    service = BookingService(db)
    booking = service.find_customer_booking(order_reference, request.contact_email)
    booking = service.reschedule_booking(
        booking.id,
        new_trip_id=request.new_trip_id,
        new_seat_numbers=request.new_seat_numbers,
        leg=request.leg
    )
    return service.to_response(booking)

@router.post("/reference/{order_reference}/checkout", response_model=CheckoutSession)
def start_checkout(
    order_reference: str,
    request: CheckoutRequest,
    db: Session = Depends(get_db)
):
    """Open a Stripe Checkout session for a pending booking"""

    service = BookingService(db)
    booking = service.find_customer_booking(order_reference, request.contact_email)
    if booking.booking_status != BookingStatus.PENDING.value:
        raise InvalidState(booking_id=booking.id, booking_status=booking.booking_status)

    try:
        session = StripePaymentService().create_checkout_session(
            amount=booking.total_price,
            currency=booking.currency,
            order_reference=booking.order_reference,
            booking_id=booking.id,
            customer_email=booking.contact_email
        )
    except PaymentGatewayNotConfigured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment gateway is not configured"
        )

    service.attach_payment_reference(booking.id, session.payment_reference)
    return session

# Back-office endpoints
@admin_router.get("/bookings", response_model=List[BookingResponse])
def list_bookings(
    booking_status: Optional[BookingStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    trip_id: Optional[int] = Query(None),
    agent_id: Optional[str] = Query(None),
    consultant_id: Optional[str] = Query(None),
    order_reference: Optional[str] = Query(None),
    contact_email: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    filters = BookingSearchFilters(
        booking_status=booking_status,
        payment_status=payment_status,
        trip_id=trip_id,
        agent_id=agent_id,
        consultant_id=consultant_id,
        order_reference=order_reference,
        contact_email=contact_email
    )
    service = BookingService(db)
    return [service.to_response(b) for b in service.list_bookings(filters, skip=skip, limit=limit)]

@admin_router.post("/bookings/reap-expired", response_model=ReapResult)
def reap_expired_bookings(
    older_than_minutes: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    """Cancel pending bookings that never completed payment"""
    older_than = timedelta(minutes=older_than_minutes) if older_than_minutes else None
    cancelled, cutoff = BookingService(db).reap_expired_pending_bookings(older_than=older_than)
    return ReapResult(cancelled_booking_ids=cancelled, cutoff=cutoff)

@admin_router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    service = BookingService(db)
    return service.to_response(service.get_booking(booking_id))

@admin_router.post("/bookings/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(
    booking_id: int,
    request: PaymentConfirmationRequest,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    service = BookingService(db)
    booking = service.confirm_booking(booking_id, payment_reference=request.payment_reference)
    return service.to_response(booking)

@admin_router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    request: BookingCancellationRequest,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    """Cancel regardless of the change window"""
    service = BookingService(db)
    booking = service.cancel_booking(booking_id, reason=request.reason, operator_override=True)
    return service.to_response(booking)

@admin_router.post("/bookings/{booking_id}/reschedule", response_model=BookingResponse)
def reschedule_booking(
    booking_id: int,
    request: BookingRescheduleRequest,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    service = BookingService(db)
    booking = service.reschedule_booking(
        booking_id,
        new_trip_id=request.new_trip_id,
        new_seat_numbers=request.new_seat_numbers,
        leg=request.leg,
        operator_override=True
    )
    return service.to_response(booking)

@admin_router.post("/bookings/{booking_id}/scan", response_model=ScanResult)
def scan_booking(
    booking_id: int,
    request: ScanRequest,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return BookingService(db).mark_scanned(booking_id, scanner_id=request.scanner_id or staff.get("sub"))

@admin_router.post("/passengers/{passenger_id}/board", response_model=PassengerResponse)
def board_passenger(
    passenger_id: int,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return BookingService(db).board_passenger(passenger_id)

@admin_router.get("/validate-ticket", response_model=TicketValidationResponse)
def validate_ticket(
    ref: str = Query(..., description="Order reference read from the QR code"),
    trip_id: int = Query(...),
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return BookingService(db).validate_ticket(ref, trip_id)
