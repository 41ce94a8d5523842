from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any
from datetime import datetime, date, time
from decimal import Decimal

class TripBase(BaseModel):
    """Fields shared by a trip and a generation template"""
    service_type: Optional[str] = None
    route_name: str = Field(..., min_length=1)
    route_origin: str = Field(..., min_length=1)
    route_destination: str = Field(..., min_length=1)
    boarding_point: Optional[str] = None
    dropping_point: Optional[str] = None
    departure_time: time
    duration_minutes: int = Field(390, gt=0)
    fare: Decimal = Field(..., ge=0)
    promo_active: bool = False
    promo_price: Optional[Decimal] = Field(None, ge=0)
    total_seats: int = Field(60, gt=0)

class TripCreate(TripBase):
    departure_date: date
    available_seats: Optional[int] = Field(None, ge=0)

class TripTemplate(TripBase):
    """A trip without a date; bulk generation stamps one per calendar day"""

    def for_date(self, departure_date: date) -> TripCreate:
        return TripCreate(departure_date=departure_date, **self.model_dump())

class TripUpdate(BaseModel):
    service_type: Optional[str] = None
    route_name: Optional[str] = Field(None, min_length=1)
    route_origin: Optional[str] = Field(None, min_length=1)
    route_destination: Optional[str] = Field(None, min_length=1)
    boarding_point: Optional[str] = None
    dropping_point: Optional[str] = None
    departure_date: Optional[date] = None
    departure_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    fare: Optional[Decimal] = Field(None, ge=0)
    promo_active: Optional[bool] = None
    promo_price: Optional[Decimal] = Field(None, ge=0)
    total_seats: Optional[int] = Field(None, gt=0)

class TripResponse(TripBase):
    id: int
    departure_date: date
    available_seats: int
    has_departed: bool
    departed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TripListResponse(BaseModel):
    trips: List[TripResponse]
    total: int

class LastScheduledDate(BaseModel):
    last_trip_date: Optional[date] = None

class SeatMap(BaseModel):
    """Seat occupancy for a trip"""
    trip_id: int
    total_seats: int
    available_seats: int
    held_seats: List[str]

# Manifest (passenger list for a departure)
class ManifestPassenger(BaseModel):
    id: int
    title: Optional[str] = None
    name: str
    seat_number: str
    boarded: bool

    class Config:
        from_attributes = True

class ManifestBooking(BaseModel):
    booking_id: int
    order_reference: str
    contact_name: str
    contact_phone: Optional[str] = None
    booking_status: str
    payment_status: str
    scanned: bool
    seats: List[str]
    passengers: List[ManifestPassenger]

class TripManifest(BaseModel):
    trip: TripResponse
    bookings: List[ManifestBooking]
    total_bookings: int
    total_booked_seats: int

# Bulk operations
class TripGenerationRequest(BaseModel):
    """Generate one trip per template per day in [start_date, end_date]"""
    templates: List[TripTemplate] = Field(..., min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days: Optional[int] = Field(None, gt=0, le=366)

    @field_validator('end_date')
    @classmethod
    def validate_end_date(cls, v, info):
        start = info.data.get('start_date')
        if v is not None and start is not None and v < start:
            raise ValueError('end_date must not be before start_date')
        return v

class TripBulkFilter(BaseModel):
    route_name: Optional[str] = None  # None or "all" matches every route
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    include_departed: bool = False

class TripBulkUpdateRequest(BaseModel):
    filters: TripBulkFilter = Field(default_factory=TripBulkFilter)
    updates: TripUpdate

class BulkOperationResult(BaseModel):
    """Result of a best-effort bulk operation"""
    operation_id: str
    total_items: int
    successful_items: int
    failed_items: int
    item_ids: List[int]
    errors: List[Dict[str, Any]]
    completed_at: datetime

class DepartureSweepResult(BaseModel):
    departed_trip_ids: List[int]
    swept_at: datetime
