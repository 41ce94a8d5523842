from datetime import date, time, timedelta
from decimal import Decimal

from src.bookings.schemas import BookingCreateRequest, PassengerInfo


def trip_payload(days_ahead=3, departure_time=time(8, 0), route_name="Gaborone - Francistown", **overrides):
    data = {
        "route_name": route_name,
        "route_origin": "Gaborone",
        "route_destination": "Francistown",
        "departure_date": date.today() + timedelta(days=days_ahead),
        "departure_time": departure_time,
        "fare": Decimal("500.00"),
        "total_seats": 10,
    }
    data.update(overrides)
    return data


def booking_request(trip_id, seats, return_trip_id=None, return_seats=None, **overrides):
    passengers = [PassengerInfo(name=f"Passenger {seat}", seat_number=seat) for seat in seats]
    for seat in return_seats or []:
        passengers.append(PassengerInfo(name=f"Passenger {seat}", seat_number=seat, is_return=True))
    data = {
        "trip_id": trip_id,
        "seat_numbers": list(seats),
        "return_trip_id": return_trip_id,
        "return_seat_numbers": list(return_seats) if return_seats else None,
        "passengers": passengers,
        "contact_name": "Kagiso Molefe",
        "contact_email": "kagiso@example.com",
        "contact_phone": "+26771234567",
    }
    data.update(overrides)
    return BookingCreateRequest(**data)
