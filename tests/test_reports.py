from datetime import date, time, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from src.config import settings
from src.exceptions import InvalidRequest
from src.reports.service import ReportService
from tests.factories import booking_request

API = settings.API_V1_STR


@pytest.fixture
def reports(db):
    return ReportService(db)


@pytest.fixture
def sales(bookings, make_trip):
    """Two Francistown departures on one day, one Maun trip a week later"""
    morning = make_trip(days_ahead=3)
    afternoon = make_trip(days_ahead=3, departure_time=time(14, 0))
    maun = make_trip(days_ahead=10, route_name="Gaborone - Maun", route_destination="Maun")

    def sell(trip, seats, **overrides):
        booking = bookings.create_booking(booking_request(trip.id, seats, **overrides))
        return bookings.confirm_booking(booking.id)

    sold = {
        "morning": sell(morning, ["1A", "1B"], agent_id="agent-7"),
        "afternoon": sell(afternoon, ["2A"], consultant_id="cons-1"),
        "maun": sell(maun, ["3A"], agent_id="agent-7"),
        "unpaid": bookings.create_booking(booking_request(morning.id, ["4A"], agent_id="agent-9")),
    }
    return SimpleNamespace(morning=morning, afternoon=afternoon, maun=maun), sold


def test_sales_by_route_groups_confirmed_bookings(reports, sales):
    trips, _ = sales

    report = reports.sales_by_route()

    assert [r.route_name for r in report] == ["Gaborone - Francistown", "Gaborone - Maun"]
    francistown, maun = report
    assert francistown.route == "Gaborone to Francistown"
    assert [(t.departure_time, t.bookings, t.revenue) for t in francistown.times] == [
        (time(8, 0), 1, Decimal("1000.00")),
        (time(14, 0), 1, Decimal("500.00")),
    ]
    assert francistown.total_bookings == 2
    assert francistown.total_revenue == Decimal("1500.00")
    assert francistown.best_day == trips.morning.departure_date
    assert francistown.best_month == trips.morning.departure_date.strftime("%Y-%m")
    assert maun.total_bookings == 1
    assert maun.route == "Gaborone to Maun"


def test_sales_by_route_date_window(reports, sales):
    trips, _ = sales

    report = reports.sales_by_route(start_date=date.today() + timedelta(days=5))

    assert [r.route_name for r in report] == ["Gaborone - Maun"]
    assert report[0].best_day == trips.maun.departure_date
    assert reports.sales_by_route(end_date=date.today()) == []


def test_best_day_tie_keeps_the_earliest(bookings, reports, make_trip):
    first = make_trip(days_ahead=3)
    second = make_trip(days_ahead=4)
    for trip in (second, first):
        booking = bookings.create_booking(booking_request(trip.id, ["1A"]))
        bookings.confirm_booking(booking.id)

    [route] = reports.sales_by_route()

    assert route.best_day == first.departure_date


def test_sales_by_agent_and_consultant_count_paid_bookings(reports, sales):
    by_agent = reports.sales_by_agent()
    by_consultant = reports.sales_by_consultant()

    assert [(s.seller_id, s.bookings, s.revenue) for s in by_agent] == [
        ("agent-7", 2, Decimal("1500.00"))
    ]
    assert [(s.seller_id, s.bookings, s.revenue) for s in by_consultant] == [
        ("cons-1", 1, Decimal("500.00"))
    ]


def test_bookings_report_lists_every_status_by_departure(reports, sales):
    _, sold = sales

    rows = reports.list_bookings_report()

    assert [row.order_reference for row in rows] == [
        sold["morning"].order_reference,
        sold["unpaid"].order_reference,
        sold["afternoon"].order_reference,
        sold["maun"].order_reference,
    ]
    assert rows[1].booking_status.value == "pending"
    assert rows[0].route == "Gaborone to Francistown"


def test_reports_reject_inverted_window(reports):
    with pytest.raises(InvalidRequest):
        reports.list_bookings_report(date(2025, 2, 1), date(2025, 1, 1))


def test_report_endpoints(client, operator_headers, sales):
    assert client.get(f"{API}/admin/reports/sales-by-route").status_code == 401

    routes = client.get(f"{API}/admin/reports/sales-by-route", headers=operator_headers)
    assert routes.status_code == 200
    assert routes.json()[0]["route_name"] == "Gaborone - Francistown"
    assert Decimal(routes.json()[0]["total_revenue"]) == Decimal("1500")
    assert routes.json()[0]["times"][0]["departure_time"] == "08:00:00"

    agents = client.get(f"{API}/admin/reports/sales-by-agent", headers=operator_headers).json()
    assert agents[0]["seller_id"] == "agent-7"
    consultants = client.get(f"{API}/admin/reports/sales-by-consultant", headers=operator_headers).json()
    assert consultants[0]["seller_id"] == "cons-1"

    listing = client.get(f"{API}/admin/reports", headers=operator_headers)
    assert len(listing.json()) == 4

    inverted = client.get(
        f"{API}/admin/reports",
        params={"start_date": "2025-02-01", "end_date": "2025-01-01"},
        headers=operator_headers
    )
    assert inverted.status_code == 422
    assert inverted.json()["error"] == "invalid_request"
