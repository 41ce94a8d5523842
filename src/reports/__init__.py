"""
Sales Reports Module

Back-office sales figures over confirmed and paid bookings.
"""

from .router import router
from .service import ReportService

__all__ = ["router", "ReportService"]
