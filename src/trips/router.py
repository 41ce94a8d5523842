from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date, datetime

from src.database import get_db
from src.auth.dependencies import require_operator
from src.trips.schemas import (
    TripCreate, TripUpdate, TripResponse, TripListResponse, LastScheduledDate,
    SeatMap, TripManifest, TripGenerationRequest, TripBulkUpdateRequest,
    BulkOperationResult, DepartureSweepResult
)
from src.trips.service import TripCatalogService
from src.trips.bulk_service import BulkTripService
from src.trips.departure_scheduler import DepartureScheduler

router = APIRouter()

# Catalog
@router.get("/", response_model=TripListResponse)
def list_trips(
    route_name: Optional[str] = Query(None, description="Route name, or 'all'"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    include_departed: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """List scheduled trips ordered by departure"""
    trips, total = TripCatalogService(db).list_trips(
        route_name=route_name,
        start_date=start_date,
        end_date=end_date,
        include_departed=include_departed,
        skip=skip,
        limit=limit
    )
    return TripListResponse(trips=[TripResponse.model_validate(t) for t in trips], total=total)

@router.post("/", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
def create_trip(
    trip: TripCreate,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return TripCatalogService(db).create_trip(trip)

@router.get("/last-date", response_model=LastScheduledDate)
def get_last_trip_date(db: Session = Depends(get_db)):
    """Latest departure date on the schedule"""
    return LastScheduledDate(last_trip_date=TripCatalogService(db).get_last_scheduled_date())

# Bulk operations
@router.post("/bulk-generate", response_model=BulkOperationResult)
def bulk_generate_trips(
    request: TripGenerationRequest,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    """Create trips from templates for every day in a window"""
    return BulkTripService(db).generate_trips(request)

@router.put("/bulk-update", response_model=BulkOperationResult)
def bulk_update_trips(
    request: TripBulkUpdateRequest,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return BulkTripService(db).bulk_update(request)

@router.post("/sweep-departures", response_model=DepartureSweepResult)
def sweep_departures(
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    now = datetime.now()
    departed = DepartureScheduler(db).sweep(now=now)
    return DepartureSweepResult(departed_trip_ids=departed, swept_at=now)

# Single trip
@router.get("/{trip_id}", response_model=TripResponse)
def get_trip(trip_id: int, db: Session = Depends(get_db)):
    return TripCatalogService(db).get_trip(trip_id)

@router.patch("/{trip_id}", response_model=TripResponse)
def update_trip(
    trip_id: int,
    update: TripUpdate,
    operator_override: bool = Query(False),
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return TripCatalogService(db).update_trip(trip_id, update, operator_override=operator_override)

@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_trip(
    trip_id: int,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    TripCatalogService(db).delete_trip(trip_id)

@router.post("/{trip_id}/depart", response_model=TripResponse)
def mark_trip_departed(
    trip_id: int,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    """Flag a trip as departed; repeating the call is a no-op"""
    trip, _ = TripCatalogService(db).mark_departed(trip_id)
    return trip

@router.get("/{trip_id}/seats", response_model=SeatMap)
def get_seat_map(trip_id: int, db: Session = Depends(get_db)):
    """Held seat numbers, for rendering the seat picker"""
    return TripCatalogService(db).get_seat_map(trip_id)

@router.get("/{trip_id}/manifest", response_model=TripManifest)
def get_trip_manifest(
    trip_id: int,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return TripCatalogService(db).get_manifest(trip_id)
