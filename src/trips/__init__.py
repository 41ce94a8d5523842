"""
Trips Module

Scheduled coach departures for the booking system. It includes:

- Trip catalog: create, edit, delete and query departures
- Bulk generation of trips from daily templates
- Bulk edits across a route and date range
- Departure sweep and the background maintenance loop

Key Components:
- service.py: TripCatalogService
- bulk_service.py: BulkTripService
- departure_scheduler.py: DepartureScheduler and MaintenanceLoop
- router.py: FastAPI endpoints for trips
- schemas.py: Pydantic models for trips and bulk operations
"""

from .router import router
from .service import TripCatalogService
from .bulk_service import BulkTripService
from .departure_scheduler import DepartureScheduler, MaintenanceLoop

__all__ = [
    "router",
    "TripCatalogService",
    "BulkTripService",
    "DepartureScheduler",
    "MaintenanceLoop"
]
