import os
import sys
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.database import build_engine, init_db, get_db
from src.main import app
from src.auth.utils import create_access_token
from src.bookings.router import booking_request_cache
from src.bookings.booking_service import BookingService
from src.bookings.notifications import BookingEventPublisher
from src.trips.schemas import TripCreate
from src.trips.service import TripCatalogService
from tests.factories import trip_payload


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db):
    return TripCatalogService(db)


@pytest.fixture
def events():
    """Publisher that records every event it receives"""
    publisher = BookingEventPublisher()
    publisher.received = []
    publisher.subscribe(publisher.received.append)
    return publisher


@pytest.fixture
def bookings(db, events):
    return BookingService(db, publisher=events)


@pytest.fixture
def make_trip(catalog):
    def _make_trip(**kwargs):
        return catalog.create_trip(TripCreate(**trip_payload(**kwargs)))
    return _make_trip


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    booking_request_cache.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    booking_request_cache.clear()


@pytest.fixture
def operator_headers():
    token = create_access_token({"sub": "ops-1", "role": "operator"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def now():
    return datetime.now()
