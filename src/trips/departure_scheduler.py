from typing import Callable, List, Optional
from datetime import datetime, timedelta
import asyncio
import logging

from sqlalchemy.orm import Session

from src.config import settings
from src.database import SessionLocal
from src.models import Trip
from src.trips.service import TripCatalogService
from src.bookings.booking_service import BookingService

logger = logging.getLogger(__name__)


class DepartureScheduler:
    """Flags trips whose departure time has passed"""

    def __init__(self, db: Session, catalog: Optional[TripCatalogService] = None):
        self.db = db
        self.catalog = catalog or TripCatalogService(db)

    def sweep(self, now: Optional[datetime] = None) -> List[int]:
        """Mark every due trip as departed; returns the ids changed by this sweep"""

        now = now or datetime.now()
        candidates = self.db.query(Trip).filter(
            Trip.has_departed.is_(False),
            Trip.departure_date <= now.date()
        ).order_by(Trip.departure_date, Trip.departure_time).all()

        departed = []
        for trip in candidates:
            if trip.departs_at > now:
                continue
            _, changed = self.catalog.mark_departed(trip.id, now=now)
            if changed:
                departed.append(trip.id)

        if departed:
            logger.info("Departure sweep marked %d trip(s): %s", len(departed), departed)
        return departed


class MaintenanceLoop:
    """
    Periodic departure sweep and expired-booking reaper.

    Each pass runs in a worker thread with a fresh session so the blocking
    database work stays off the event loop.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[float] = None,
        pending_ttl: Optional[timedelta] = None
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
        self.pending_ttl = pending_ttl or timedelta(minutes=settings.PENDING_BOOKING_TTL_MINUTES)
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def run_once(self, now: Optional[datetime] = None) -> dict:
        now = now or datetime.now()
        db = self.session_factory()
        try:
            departed = DepartureScheduler(db).sweep(now=now)
            reaped, _ = BookingService(db).reap_expired_pending_bookings(
                older_than=self.pending_ttl, now=now
            )
        finally:
            db.close()
        return {"departed_trip_ids": departed, "cancelled_booking_ids": reaped}

    async def _loop(self):
        while self._running:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Maintenance pass failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        """Schedule the loop on the running event loop"""
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Maintenance loop started (every %ss)", self.interval_seconds)
        return self._task

    async def stop(self):
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Maintenance loop stopped")
