from pydantic import BaseModel
from typing import List, Optional
from datetime import date, time
from decimal import Decimal

from src.bookings.schemas import BookingStatus, PaymentStatus

class BookingReportRow(BaseModel):
    """One booking as it appears on the bookings report"""
    booking_id: int
    order_reference: str
    route_name: str
    route: str
    departure_date: date
    departure_time: time
    total_price: Decimal
    booking_status: BookingStatus
    payment_status: PaymentStatus

class DepartureTimeSales(BaseModel):
    departure_time: time
    bookings: int
    revenue: Decimal

class RouteSales(BaseModel):
    route_name: str
    route: str
    times: List[DepartureTimeSales]
    total_bookings: int
    total_revenue: Decimal
    best_day: Optional[date] = None
    best_month: Optional[str] = None

class SellerSales(BaseModel):
    """Sales credited to one agent or consultant"""
    seller_id: str
    bookings: int
    revenue: Decimal
