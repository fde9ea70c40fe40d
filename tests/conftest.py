"""
Shared fixtures.

Configuration is read from the environment at import time, so defaults are
set here before any booking_engine module is imported. Every integration test
gets its own SQLite database file with the full schema.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ALLOWED_ORIGINS", "*")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import insert
from sqlalchemy.engine import Engine

from booking_engine.db.engine import create_db_engine
from booking_engine.models.base import Base
from booking_engine.models.bookings import Booking, Guest  # noqa: F401
from booking_engine.models.calendars import (
    ExternalCalendar,
    ExternalReservation,
    SyncRun,  # noqa: F401
)
from booking_engine.models.holds import Hold
from booking_engine.models.pricing import BlackoutDate, Coupon, PricingRule
from booking_engine.models.properties import Property


class Seeder:
    """Insert test rows directly, bypassing the services under test."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _insert(self, table: Any, **values: Any) -> uuid.UUID:
        values.setdefault("id", uuid.uuid4())
        with self.engine.begin() as conn:
            conn.execute(insert(table).values(**values))
        return values["id"]

    def property(self, max_guests: int = 6, **values: Any) -> uuid.UUID:
        return self._insert(Property, title="Ocean View Cottage", max_guests=max_guests, **values)

    def rule(
        self,
        property_id: uuid.UUID,
        rule_type: str,
        value: Any,
        percentage: bool = False,
        **values: Any,
    ) -> uuid.UUID:
        return self._insert(
            PricingRule,
            property_id=property_id,
            rule_type=rule_type,
            value=Decimal(str(value)) if value is not None else None,
            percentage=percentage,
            **values,
        )

    def coupon(self, code: str, type_: str, value: Any, **values: Any) -> uuid.UUID:
        return self._insert(Coupon, code=code, type=type_, value=Decimal(str(value)), **values)

    def blackout(self, property_id: uuid.UUID, start: date, end: date) -> uuid.UUID:
        return self._insert(BlackoutDate, property_id=property_id, start_date=start, end_date=end)

    def hold(
        self,
        property_id: uuid.UUID,
        start: date,
        end: date,
        expires_at: datetime,
        reference_id: Optional[str] = None,
    ) -> uuid.UUID:
        return self._insert(
            Hold,
            property_id=property_id,
            start_date=start,
            end_date=end,
            reason="checkout",
            reference_id=reference_id,
            expires_at=expires_at,
        )

    def calendar(self, property_id: uuid.UUID, **values: Any) -> uuid.UUID:
        row: dict[str, Any] = {
            "property_id": property_id,
            "platform": "airbnb",
            "name": "Airbnb listing",
            "ical_url": "https://www.airbnb.com/calendar/ical/123.ics?s=abc",
        }
        row.update(values)
        return self._insert(ExternalCalendar, **row)

    def external_reservation(
        self,
        calendar_id: uuid.UUID,
        uid: str,
        start: date,
        end: date,
        status: str = "reserved",
        is_blocking: bool = True,
        **values: Any,
    ) -> uuid.UUID:
        return self._insert(
            ExternalReservation,
            calendar_id=calendar_id,
            external_uid=uid,
            start_date=start,
            end_date=end,
            status=status,
            is_blocking=is_blocking,
            **values,
        )

    @staticmethod
    def guest(first_name: str = "Leilani", email: str = "leilani@example.com") -> dict[str, Any]:
        return {"first_name": first_name, "last_name": "Kahale", "email": email, "phone": None}


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Engine bound to a fresh SQLite file with all tables created."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seed(db_engine: Engine) -> Seeder:
    return Seeder(db_engine)


@pytest.fixture
def future_wednesday() -> date:
    """A Wednesday far enough ahead that check-in is never in the past."""
    return date(2030, 6, 5)


@pytest.fixture
def now() -> datetime:
    return datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def property_id(seed: Seeder) -> uuid.UUID:
    return seed.property()


@pytest.fixture
def priced_property(seed: Seeder, property_id: uuid.UUID) -> uuid.UUID:
    """
    Property with the standard Maui rule set: base 450, weekend +50,
    cleaning 150, service 15%, TAT 10.25%, GET 4.17%.
    """
    seed.rule(property_id, "base", 450)
    seed.rule(property_id, "weekend", 50)
    seed.rule(property_id, "cleaning_fee", 150)
    seed.rule(property_id, "service_fee", 15, percentage=True)
    seed.rule(property_id, "tat_rate", "10.25", percentage=True)
    seed.rule(property_id, "get_rate", "4.17", percentage=True)
    return property_id


@pytest.fixture
def far_future() -> datetime:
    """Expiry that never passes during a test run."""
    return datetime.now(timezone.utc) + timedelta(days=3650)


@pytest.fixture
def client(db_engine: Engine) -> Generator[TestClient, None, None]:
    """FastAPI test client with every route bound to the test database."""
    from booking_engine.dependencies import get_db_engine
    from booking_engine.main import app

    app.dependency_overrides[get_db_engine] = lambda: db_engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
