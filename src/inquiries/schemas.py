from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import date, datetime
from enum import Enum

class InquiryStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUOTED = "quoted"
    CLOSED = "closed"

class InquiryCreate(BaseModel):
    """Bus hire request from the public site"""
    name: str = Field(..., min_length=2)
    email: str
    phone: Optional[str] = None
    origin: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    travel_date: date
    passenger_count: int = Field(..., ge=1)
    message: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if '@' not in v:
            raise ValueError('A valid email address is required')
        return v

class InquiryStatusUpdate(BaseModel):
    status: InquiryStatus

class InquiryResponse(InquiryCreate):
    id: int
    status: InquiryStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class InquiryListResponse(BaseModel):
    inquiries: List[InquiryResponse]
    total: int
