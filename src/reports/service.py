from typing import Dict, List, Optional, Tuple
from collections import defaultdict
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from src.models import Booking, Trip
from src.exceptions import InvalidRequest
from src.bookings.schemas import BookingStatus, PaymentStatus
from src.reports.schemas import BookingReportRow, DepartureTimeSales, RouteSales, SellerSales


def route_label(trip: Trip) -> str:
    return f"{trip.route_origin} to {trip.route_destination}"


class ReportService:
    """Sales figures for the back office, read straight from bookings"""

    def __init__(self, db: Session):
        self.db = db

    def list_bookings_report(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[BookingReportRow]:
        """Every booking departing in the window, earliest departure first"""

        rows = self._bookings_with_trip(start_date, end_date).all()
        return [
            BookingReportRow(
                booking_id=booking.id,
                order_reference=booking.order_reference,
                route_name=trip.route_name,
                route=route_label(trip),
                departure_date=trip.departure_date,
                departure_time=trip.departure_time,
                total_price=booking.total_price,
                booking_status=booking.booking_status,
                payment_status=booking.payment_status
            )
            for booking, trip in rows
        ]

    def sales_by_route(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[RouteSales]:
        """
        Confirmed bookings grouped by route and departure time.

        The best day and best month are the departure date and month with the
        most revenue; on a tie the earliest one wins.
        """

        query = self._bookings_with_trip(start_date, end_date).filter(
            Booking.booking_status == BookingStatus.CONFIRMED.value
        )

        routes: Dict[Tuple[str, str], dict] = {}
        for booking, trip in query.all():
            key = (trip.route_name, route_label(trip))
            data = routes.setdefault(key, {
                "times": defaultdict(lambda: [0, Decimal("0")]),
                "days": defaultdict(Decimal),
                "months": defaultdict(Decimal)
            })
            price = Decimal(booking.total_price)
            slot = data["times"][trip.departure_time]
            slot[0] += 1
            slot[1] += price
            data["days"][trip.departure_date] += price
            data["months"][trip.departure_date.strftime("%Y-%m")] += price

        report = []
        for (route_name, route), data in routes.items():
            times = [
                DepartureTimeSales(departure_time=departure_time, bookings=count, revenue=revenue)
                for departure_time, (count, revenue) in sorted(data["times"].items())
            ]
            report.append(RouteSales(
                route_name=route_name,
                route=route,
                times=times,
                total_bookings=sum(t.bookings for t in times),
                total_revenue=sum((t.revenue for t in times), Decimal("0")),
                best_day=self._best(data["days"]),
                best_month=self._best(data["months"])
            ))

        report.sort(key=lambda r: (-r.total_revenue, r.route_name))
        return report

    def sales_by_agent(self) -> List[SellerSales]:
        return self._sales_by_seller(Booking.agent_id)

    def sales_by_consultant(self) -> List[SellerSales]:
        return self._sales_by_seller(Booking.consultant_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bookings_with_trip(self, start_date: Optional[date], end_date: Optional[date]):
        if start_date and end_date and start_date > end_date:
            raise InvalidRequest(
                reason="start_after_end",
                start_date=start_date.isoformat(),
                end_date=end_date.isoformat()
            )

        query = self.db.query(Booking, Trip).join(Trip, Booking.trip_id == Trip.id)
        if start_date:
            query = query.filter(Trip.departure_date >= start_date)
        if end_date:
            query = query.filter(Trip.departure_date <= end_date)
        return query.order_by(Trip.departure_date, Trip.departure_time, Booking.id)

    def _sales_by_seller(self, column) -> List[SellerSales]:
        """Paid bookings credited to each seller; bookings without one are skipped"""

        totals: Dict[str, list] = defaultdict(lambda: [0, Decimal("0")])
        query = self.db.query(column, Booking.total_price).filter(
            Booking.payment_status == PaymentStatus.PAID.value,
            column.isnot(None)
        )
        for seller_id, price in query.all():
            totals[seller_id][0] += 1
            totals[seller_id][1] += Decimal(price)

        sales = [
            SellerSales(seller_id=seller_id, bookings=count, revenue=revenue)
            for seller_id, (count, revenue) in totals.items()
        ]
        sales.sort(key=lambda s: (-s.revenue, s.seller_id))
        return sales

    @staticmethod
    def _best(revenue_by_period: dict):
        best = None
        for period in sorted(revenue_by_period):
            if best is None or revenue_by_period[period] > revenue_by_period[best]:
                best = period
        return best
