from typing import Callable, List
from datetime import datetime
import logging

from pydantic import BaseModel, Field

from src.bookings.schemas import BookingResponse

logger = logging.getLogger(__name__)

BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_RESCHEDULED = "booking.rescheduled"


class BookingEvent(BaseModel):
    name: str
    booking: BookingResponse
    occurred_at: datetime = Field(default_factory=datetime.now)


EventHandler = Callable[[BookingEvent], None]


class BookingEventPublisher:
    """
    In-process fan-out of booking lifecycle events.

    Ticket rendering and e-mail delivery subscribe here. Events are published
    after the transaction commits; a failing subscriber is logged and does not
    affect the booking or the other subscribers.
    """

    def __init__(self):
        self._subscribers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> EventHandler:
        if handler not in self._subscribers:
            self._subscribers.append(handler)
        return handler

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def publish(self, event: BookingEvent) -> None:
        for handler in list(self._subscribers):
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s", handler, event.name)


def log_booking_event(event: BookingEvent) -> None:
    logger.info(
        "%s order=%s status=%s payment=%s",
        event.name,
        event.booking.order_reference,
        event.booking.booking_status.value,
        event.booking.payment_status.value
    )


booking_events = BookingEventPublisher()
booking_events.subscribe(log_booking_event)
