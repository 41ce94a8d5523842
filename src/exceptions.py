"""
Typed failures raised by the trip, inventory and booking services.

Every error carries a stable ``code`` and a structured ``details`` mapping.
Human-readable messages are the client's job; the HTTP layer only serialises
``{"error": code, "details": details}`` with the mapped status code.
"""

from typing import Any, Dict


class BookingSystemError(Exception):
    """Base class for all domain errors"""
    code = "booking_system_error"
    status_code = 400

    def __init__(self, **details: Any):
        self.details: Dict[str, Any] = details
        super().__init__(self.code, details)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "details": self.details}


class TripNotFound(BookingSystemError):
    code = "trip_not_found"
    status_code = 404


class BookingNotFound(BookingSystemError):
    code = "booking_not_found"
    status_code = 404


class PassengerNotFound(BookingSystemError):
    code = "passenger_not_found"
    status_code = 404


class InquiryNotFound(BookingSystemError):
    code = "inquiry_not_found"
    status_code = 404


class SeatUnavailable(BookingSystemError):
    code = "seat_unavailable"
    status_code = 409


class TripDeparted(BookingSystemError):
    code = "trip_departed"
    status_code = 409


class ChangeWindowClosed(BookingSystemError):
    code = "change_window_closed"
    status_code = 409


class InvalidState(BookingSystemError):
    code = "invalid_state"
    status_code = 409


class Conflict(BookingSystemError):
    code = "conflict"
    status_code = 409


class InvalidRequest(BookingSystemError):
    code = "invalid_request"
    status_code = 422
