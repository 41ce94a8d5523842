from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from src.models import Inquiry
from src.exceptions import InquiryNotFound
from src.inquiries.schemas import InquiryCreate, InquiryStatus

logger = logging.getLogger(__name__)


class InquiryService:
    """Bus hire inquiries; independent of seat inventory"""

    def __init__(self, db: Session):
        self.db = db

    def create_inquiry(self, data: InquiryCreate) -> Inquiry:
        inquiry = Inquiry(**data.model_dump(), status=InquiryStatus.NEW.value)
        self.db.add(inquiry)
        self.db.commit()
        self.db.refresh(inquiry)
        logger.info("New bus hire inquiry %s (%s -> %s)", inquiry.id, inquiry.origin, inquiry.destination)
        return inquiry

    def get_inquiry(self, inquiry_id: int) -> Inquiry:
        inquiry = self.db.get(Inquiry, inquiry_id)
        if inquiry is None:
            raise InquiryNotFound(inquiry_id=inquiry_id)
        return inquiry

    def list_inquiries(
        self,
        status: Optional[InquiryStatus] = None,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[Inquiry], int]:
        query = self.db.query(Inquiry)
        if status:
            query = query.filter(Inquiry.status == status.value)
        total = query.count()
        return query.order_by(Inquiry.id.desc()).offset(skip).limit(limit).all(), total

    def update_status(self, inquiry_id: int, status: InquiryStatus) -> Inquiry:
        inquiry = self.get_inquiry(inquiry_id)
        inquiry.status = status.value
        self.db.commit()
        self.db.refresh(inquiry)
        return inquiry

    def delete_inquiry(self, inquiry_id: int) -> None:
        inquiry = self.get_inquiry(inquiry_id)
        self.db.delete(inquiry)
        self.db.commit()
