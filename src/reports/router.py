from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from src.database import get_db
from src.auth.dependencies import require_operator
from src.reports.schemas import BookingReportRow, RouteSales, SellerSales
from src.reports.service import ReportService

router = APIRouter()

@router.get("/reports", response_model=List[BookingReportRow])
def bookings_report(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    return ReportService(db).list_bookings_report(start_date, end_date)

@router.get("/reports/sales-by-route", response_model=List[RouteSales])
def sales_by_route(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    staff=Depends(require_operator)
):
    """Confirmed bookings and revenue per route and departure time"""
    return ReportService(db).sales_by_route(start_date, end_date)

@router.get("/reports/sales-by-agent", response_model=List[SellerSales])
def sales_by_agent(db: Session = Depends(get_db), staff=Depends(require_operator)):
    return ReportService(db).sales_by_agent()

@router.get("/reports/sales-by-consultant", response_model=List[SellerSales])
def sales_by_consultant(db: Session = Depends(get_db), staff=Depends(require_operator)):
    return ReportService(db).sales_by_consultant()
