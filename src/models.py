from datetime import datetime

from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Date, Time, Text,
    ForeignKey, Numeric, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from src.database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY
PK = BigInteger().with_variant(Integer, "sqlite")

# ================================
# Trips (scheduled departures)
# ================================
class Trip(Base):
    __tablename__ = "trips"

    id = Column(PK, primary_key=True, index=True)
    service_type = Column(String(50))
    route_name = Column(String(255), nullable=False, index=True)
    route_origin = Column(String(255), nullable=False)
    route_destination = Column(String(255), nullable=False)
    boarding_point = Column(String(255))
    dropping_point = Column(String(255))
    departure_date = Column(Date, nullable=False, index=True)
    departure_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=390)
    fare = Column(Numeric(10, 2), nullable=False)
    promo_active = Column(Boolean, default=False)
    promo_price = Column(Numeric(10, 2))
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    has_departed = Column(Boolean, default=False, nullable=False, index=True)
    departed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    bookings = relationship("Booking", foreign_keys="Booking.trip_id", back_populates="trip")
    return_bookings = relationship("Booking", foreign_keys="Booking.return_trip_id", back_populates="return_trip")
    held_seats = relationship("BookingSeat", back_populates="trip")

    __table_args__ = (
        UniqueConstraint("route_name", "departure_date", "departure_time", name="uq_trip_route_departure"),
        CheckConstraint("available_seats >= 0", name="ck_trip_available_non_negative"),
        CheckConstraint("available_seats <= total_seats", name="ck_trip_available_within_capacity"),
    )

    @property
    def departs_at(self) -> datetime:
        return datetime.combine(self.departure_date, self.departure_time)

    @property
    def effective_fare(self):
        if self.promo_active and self.promo_price is not None:
            return self.promo_price
        return self.fare

# ================================
# Bookings & held seats
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(PK, primary_key=True, index=True)
    order_reference = Column(String(64), unique=True, nullable=False, index=True)
    trip_id = Column(PK, ForeignKey("trips.id"), nullable=False, index=True)
    return_trip_id = Column(PK, ForeignKey("trips.id"), index=True)
    contact_name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=False, index=True)
    contact_phone = Column(String(50))
    contact_id_number = Column(String(50))
    total_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    promo_code = Column(String(50))
    discount_amount = Column(Numeric(10, 2), default=0)
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    booking_status = Column(String(20), nullable=False, default="pending", index=True)
    payment_reference = Column(String(255))
    cancellation_reason = Column(Text)
    agent_id = Column(String(64), index=True)
    consultant_id = Column(String(64), index=True)
    scanned = Column(Boolean, default=False, nullable=False)
    last_scanned = Column(DateTime(timezone=True))
    scanner_id = Column(String(64))
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.now, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))

    # Relationships
    trip = relationship("Trip", foreign_keys=[trip_id], back_populates="bookings")
    return_trip = relationship("Trip", foreign_keys=[return_trip_id], back_populates="return_bookings")
    seats = relationship("BookingSeat", back_populates="booking", order_by="BookingSeat.id")
    passengers = relationship(
        "Passenger",
        back_populates="booking",
        order_by="Passenger.id",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "booking_status IN ('pending', 'confirmed', 'cancelled')",
            name="ck_booking_status"
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'cancelled')",
            name="ck_booking_payment_status"
        ),
        Index("ix_bookings_status_created", "booking_status", "created_at"),
    )

class BookingSeat(Base):
    """A seat currently held by a non-cancelled booking; deleted on release."""
    __tablename__ = "booking_seats"

    id = Column(PK, primary_key=True, index=True)
    trip_id = Column(PK, ForeignKey("trips.id"), nullable=False, index=True)
    booking_id = Column(PK, ForeignKey("bookings.id"), nullable=False, index=True)
    seat_number = Column(String(16), nullable=False)
    is_return = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    trip = relationship("Trip", back_populates="held_seats")
    booking = relationship("Booking", back_populates="seats")

    __table_args__ = (
        UniqueConstraint("trip_id", "seat_number", name="uq_booking_seat_trip_seat"),
    )

class Passenger(Base):
    __tablename__ = "passengers"

    id = Column(PK, primary_key=True, index=True)
    booking_id = Column(PK, ForeignKey("bookings.id"), nullable=False, index=True)
    title = Column(String(20))
    name = Column(String(255), nullable=False)
    seat_number = Column(String(16), nullable=False)
    is_return = Column(Boolean, default=False, nullable=False)
    boarded = Column(Boolean, default=False, nullable=False)
    boarded_at = Column(DateTime(timezone=True))

    # Relationships
    booking = relationship("Booking", back_populates="passengers")

# ================================
# Bus hire inquiries
# ================================
class Inquiry(Base):
    __tablename__ = "inquiries"

    id = Column(PK, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50))
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    travel_date = Column(Date, nullable=False)
    passenger_count = Column(Integer, nullable=False)
    message = Column(Text)
    status = Column(String(20), nullable=False, default="new", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
