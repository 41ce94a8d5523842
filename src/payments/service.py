from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from src.bookings.booking_service import BookingService
from src.exceptions import BookingNotFound, InvalidState

logger = logging.getLogger(__name__)

CONFIRMING_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
FAILING_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


class PaymentEventHandler:
    """Maps verified gateway events onto booking transitions"""

    def __init__(self, db: Session, booking_service: Optional[BookingService] = None):
        self.db = db
        self.bookings = booking_service or BookingService(db)

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_type = event.get("type", "")
        session = (event.get("data") or {}).get("object") or {}
        metadata = session.get("metadata") or {}

        if event_type not in CONFIRMING_EVENTS | FAILING_EVENTS:
            return {"status": "ignored", "event_type": event_type}

        booking_id = metadata.get("order_id")
        if booking_id is None:
            logger.warning("Event %s carries no order_id", event.get("id"))
            return {"status": "ignored", "event_type": event_type, "reason": "missing_order_id"}

        try:
            booking_id = int(booking_id)
        except (TypeError, ValueError):
            return {"status": "ignored", "event_type": event_type, "reason": "invalid_order_id"}

        if event_type == "checkout.session.completed" and session.get("payment_status") != "paid":
            # Delayed payment methods settle through async_payment_succeeded
            return {"status": "awaiting_payment", "event_type": event_type, "booking_id": booking_id}

        try:
            if event_type in CONFIRMING_EVENTS:
                booking = self.bookings.confirm_booking(
                    booking_id,
                    payment_reference=session.get("payment_intent") or session.get("id")
                )
            else:
                booking = self.bookings.fail_payment(booking_id, reason=event_type)
        except BookingNotFound:
            logger.warning("Event %s references unknown booking %s", event.get("id"), booking_id)
            return {"status": "ignored", "event_type": event_type, "reason": "booking_not_found"}
        except InvalidState as e:
            # Gateways redeliver; a booking already past pending is not an error
            logger.info("Duplicate %s for booking %s: %s", event_type, booking_id, e.details)
            return {"status": "duplicate", "event_type": event_type, "booking_id": booking_id}

        return {
            "status": "processed",
            "event_type": event_type,
            "booking_id": booking.id,
            "booking_status": booking.booking_status
        }
