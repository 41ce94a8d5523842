"""
Seat Inventory Module

The inventory ledger is the only component that changes a trip's
``available_seats`` counter. Held seats are stored one row per seat with a
unique ``(trip_id, seat_number)`` constraint, so two live bookings can never
hold the same seat on a trip.

Key Components:
- ledger.py: InventoryLedger (reserve / release / resize) and the per-trip
  lock registry used to serialize reservations inside the process
"""

from .ledger import InventoryLedger, TripLockRegistry, trip_locks, normalize_seat_numbers

__all__ = [
    "InventoryLedger",
    "TripLockRegistry",
    "trip_locks",
    "normalize_seat_numbers"
]
