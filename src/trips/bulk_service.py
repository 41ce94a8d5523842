from typing import List, Dict, Any, Optional, Tuple
from datetime import datetime, date, timedelta
import logging

from sqlalchemy.orm import Session

from src.config import settings
from src.exceptions import BookingSystemError, InvalidRequest
from src.trips.schemas import (
    TripGenerationRequest, TripBulkUpdateRequest, BulkOperationResult
)
from src.trips.service import TripCatalogService

logger = logging.getLogger(__name__)


class BulkTripService:
    """
    Batch trip creation and editing.

    Every item goes through the same TripCatalogService call a single edit
    would use and is committed on its own. A failing item is recorded in the
    result and the batch carries on.
    """

    def __init__(self, db: Session, catalog: Optional[TripCatalogService] = None):
        self.db = db
        self.catalog = catalog or TripCatalogService(db)

    def resolve_generation_window(
        self,
        request: TripGenerationRequest,
        today: Optional[date] = None
    ) -> Tuple[date, date]:
        """Start after the last scheduled day unless told otherwise"""

        today = today or date.today()
        start = request.start_date
        if start is None:
            last = self.catalog.get_last_scheduled_date()
            start = last + timedelta(days=1) if last else today

        end = request.end_date
        if end is None:
            days = request.days or settings.DEFAULT_GENERATION_DAYS
            end = start + timedelta(days=days - 1)

        if end < start:
            raise InvalidRequest(
                reason="empty_generation_window",
                start_date=start.isoformat(),
                end_date=end.isoformat()
            )
        return start, end

    def generate_trips(
        self,
        request: TripGenerationRequest,
        today: Optional[date] = None
    ) -> BulkOperationResult:
        """Create one trip per template for every day in the window"""

        start, end = self.resolve_generation_window(request, today=today)
        operation_id = f"generate_{int(datetime.now().timestamp())}"
        created_ids: List[int] = []
        errors: List[Dict[str, Any]] = []
        total = 0

        current = start
        while current <= end:
            for index, template in enumerate(request.templates):
                total += 1
                try:
                    trip = self.catalog.create_trip(template.for_date(current))
                    created_ids.append(trip.id)
                except BookingSystemError as e:
                    errors.append({
                        "departure_date": current.isoformat(),
                        "template_index": index,
                        "route_name": template.route_name,
                        **e.to_dict()
                    })
            current += timedelta(days=1)

        logger.info(
            "Trip generation %s: %s..%s created=%d failed=%d",
            operation_id, start, end, len(created_ids), len(errors)
        )

        return BulkOperationResult(
            operation_id=operation_id,
            total_items=total,
            successful_items=len(created_ids),
            failed_items=len(errors),
            item_ids=created_ids,
            errors=errors,
            completed_at=datetime.now()
        )

    def bulk_update(self, request: TripBulkUpdateRequest) -> BulkOperationResult:
        """Apply the same field changes to every trip matching the filters"""

        if not request.updates.model_dump(exclude_unset=True):
            raise InvalidRequest(reason="no_fields_to_update")

        filters = request.filters
        trips, _ = self.catalog.list_trips(
            route_name=filters.route_name,
            start_date=filters.start_date,
            end_date=filters.end_date,
            include_departed=filters.include_departed
        )
        trip_ids = [trip.id for trip in trips]

        operation_id = f"bulk_{int(datetime.now().timestamp())}"
        updated_ids: List[int] = []
        errors: List[Dict[str, Any]] = []

        for trip_id in trip_ids:
            try:
                self.catalog.update_trip(
                    trip_id,
                    request.updates,
                    operator_override=filters.include_departed
                )
                updated_ids.append(trip_id)
            except BookingSystemError as e:
                errors.append({"trip_id": trip_id, **e.to_dict()})

        logger.info(
            "Bulk update %s: matched=%d updated=%d skipped=%d",
            operation_id, len(trip_ids), len(updated_ids), len(errors)
        )

        return BulkOperationResult(
            operation_id=operation_id,
            total_items=len(trip_ids),
            successful_items=len(updated_ids),
            failed_items=len(errors),
            item_ids=updated_ids,
            errors=errors,
            completed_at=datetime.now()
        )
