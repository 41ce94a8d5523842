from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

class BookingLeg(str, Enum):
    OUTBOUND = "outbound"
    RETURN = "return"

class ScanOutcome(str, Enum):
    SCANNED = "scanned"
    ALREADY_SCANNED = "already_scanned"

# Passenger Information
class PassengerInfo(BaseModel):
    """Passenger travelling on one leg of a booking"""
    title: Optional[str] = None
    name: str = Field(..., min_length=1)
    seat_number: str = Field(..., min_length=1)
    is_return: bool = False

class PassengerResponse(PassengerInfo):
    id: int
    boarded: bool
    boarded_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Booking Request Models
class BookingCreateRequest(BaseModel):
    """Request to hold seats and open a pending booking"""
    trip_id: int
    seat_numbers: List[str] = Field(..., min_length=1)
    return_trip_id: Optional[int] = None
    return_seat_numbers: Optional[List[str]] = None
    passengers: List[PassengerInfo]
    contact_name: str = Field(..., min_length=2)
    contact_email: str
    contact_phone: Optional[str] = None
    contact_id_number: Optional[str] = None
    promo_code: Optional[str] = None
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    agent_id: Optional[str] = None
    consultant_id: Optional[str] = None

    @field_validator('contact_email')
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if '@' not in v:
            raise ValueError('A valid email address is required')
        return v

    @field_validator('passengers')
    @classmethod
    def validate_passengers(cls, v):
        if not v:
            raise ValueError('At least one passenger is required')
        return v

    @model_validator(mode='after')
    def validate_return_leg(self):
        if self.return_trip_id is not None and not self.return_seat_numbers:
            raise ValueError('return_seat_numbers are required for a return trip')
        if self.return_trip_id is None and self.return_seat_numbers:
            raise ValueError('return_seat_numbers given without return_trip_id')
        return self

class BookingLookupRequest(BaseModel):
    order_reference: str
    contact_email: str

class BookingCancellationRequest(BaseModel):
    reason: Optional[str] = None

class CustomerCancellationRequest(BookingCancellationRequest):
    contact_email: str

class BookingRescheduleRequest(BaseModel):
    new_trip_id: int
    new_seat_numbers: Optional[List[str]] = None
    leg: BookingLeg = BookingLeg.OUTBOUND

class CustomerRescheduleRequest(BookingRescheduleRequest):
    contact_email: str

class CheckoutRequest(BaseModel):
    contact_email: str

class PaymentConfirmationRequest(BaseModel):
    """Manual confirmation, e.g. after a gateway reconciliation"""
    payment_reference: Optional[str] = None

class ScanRequest(BaseModel):
    scanner_id: Optional[str] = None

class BookingSearchFilters(BaseModel):
    """Booking search filters"""
    booking_status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    trip_id: Optional[int] = None
    agent_id: Optional[str] = None
    consultant_id: Optional[str] = None
    order_reference: Optional[str] = None
    contact_email: Optional[str] = None

# Booking Response Models
class BookingResponse(BaseModel):
    """Booking details"""
    id: int
    order_reference: str
    trip_id: int
    return_trip_id: Optional[int] = None
    seat_numbers: List[str]
    return_seat_numbers: List[str] = []
    passengers: List[PassengerResponse]
    contact_name: str
    contact_email: str
    contact_phone: Optional[str] = None
    total_price: Decimal
    currency: str
    promo_code: Optional[str] = None
    discount_amount: Optional[Decimal] = None
    booking_status: BookingStatus
    payment_status: PaymentStatus
    payment_reference: Optional[str] = None
    cancellation_reason: Optional[str] = None
    scanned: bool
    last_scanned: Optional[datetime] = None
    scanner_id: Optional[str] = None
    agent_id: Optional[str] = None
    consultant_id: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

class BookingLookupResponse(BaseModel):
    booking: BookingResponse
    can_edit: bool

class ScanResult(BaseModel):
    """Outcome of a boarding scan; a repeat scan is not an error"""
    outcome: ScanOutcome
    booking_id: int
    order_reference: str
    scanned_at: datetime
    scanner_id: Optional[str] = None

class TicketValidationResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None
    booking: BookingResponse

class CheckoutSession(BaseModel):
    order_reference: str
    checkout_url: str
    payment_reference: str

class ReapResult(BaseModel):
    cancelled_booking_ids: List[int]
    cutoff: datetime
