from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from src.database import get_db
from src.auth.dependencies import require_operator
from src.inquiries.schemas import (
    InquiryCreate, InquiryResponse, InquiryListResponse, InquiryStatus, InquiryStatusUpdate
)
from src.inquiries.service import InquiryService

router = APIRouter()

@router.post("/", response_model=InquiryResponse, status_code=status.HTTP_201_CREATED)
def create_inquiry(inquiry: InquiryCreate, db: Session = Depends(get_db)):
    """Submit a bus hire inquiry"""
    return InquiryService(db).create_inquiry(inquiry)

@router.get("/", response_model=InquiryListResponse)
def list_inquiries(
    status_filter: Optional[InquiryStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    inquiries, total = InquiryService(db).list_inquiries(status_filter, skip=skip, limit=limit)
    return InquiryListResponse(
        inquiries=[InquiryResponse.model_validate(i) for i in inquiries],
        total=total
    )

@router.patch("/{inquiry_id}/status", response_model=InquiryResponse)
def update_inquiry_status(
    inquiry_id: int,
    update: InquiryStatusUpdate,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return InquiryService(db).update_status(inquiry_id, update.status)

@router.delete("/{inquiry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    InquiryService(db).delete_inquiry(inquiry_id)
