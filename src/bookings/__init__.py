"""
Booking & Ticketing Module

Seat holds, the booking lifecycle (pending, confirmed, cancelled), boarding
scans and customer self-service.

Key Components:
- booking_service.py: booking lifecycle on top of the inventory ledger
- notifications.py: in-process booking event publisher
- idempotency.py: replay cache for retried booking requests
- ticket_service.py: QR code rendering of order references
- router.py: customer and back-office FastAPI endpoints
- schemas.py: Pydantic models for bookings and passengers
"""

from .router import router, admin_router
from .booking_service import BookingService, generate_order_reference
from .notifications import BookingEvent, BookingEventPublisher, booking_events
from .schemas import (
    BookingCreateRequest, BookingResponse, BookingStatus, PaymentStatus,
    BookingLeg, ScanOutcome, ScanResult
)

__all__ = [
    "router",
    "admin_router",
    "BookingService",
    "generate_order_reference",
    "BookingEvent",
    "BookingEventPublisher",
    "booking_events",
    "BookingCreateRequest",
    "BookingResponse",
    "BookingStatus",
    "PaymentStatus",
    "BookingLeg",
    "ScanOutcome",
    "ScanResult"
]
