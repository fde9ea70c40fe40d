"""
FastAPI dependency injection providers.

Routes receive the engine and the engine-backed services through these
providers. Tests override get_db_engine via app.dependency_overrides to run
every route against a throwaway database; the service providers pick the
override up automatically.

Example:
    >>> app.dependency_overrides[get_db_engine] = lambda: test_engine
    >>> client = TestClient(app)
    >>> client.get("/api/v1/availability", params={"start": "2030-06-01", "end": "2030-06-04"})
"""

from __future__ import annotations

from typing import Generator

from fastapi import Depends
from sqlalchemy.engine import Engine

from booking_engine.db.engine import engine
from booking_engine.services.availability import AvailabilityResolver
from booking_engine.services.bookings import BookingService
from booking_engine.services.holds import HoldManager
from booking_engine.services.pricing import PricingEvaluator
from booking_engine.services.reservations import ReservationStore
from booking_engine.services.sync import SyncEngine


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide the database engine.

    Yields:
        Engine: SQLAlchemy database engine
    """
    yield engine


def get_reservation_store(db_engine: Engine = Depends(get_db_engine)) -> ReservationStore:
    return ReservationStore(db_engine)


def get_availability_resolver(
    db_engine: Engine = Depends(get_db_engine),
) -> AvailabilityResolver:
    return AvailabilityResolver(db_engine)


def get_pricing_evaluator(
    db_engine: Engine = Depends(get_db_engine),
    resolver: AvailabilityResolver = Depends(get_availability_resolver),
) -> PricingEvaluator:
    return PricingEvaluator(db_engine, resolver)


def get_booking_service(
    db_engine: Engine = Depends(get_db_engine),
    store: ReservationStore = Depends(get_reservation_store),
    pricing: PricingEvaluator = Depends(get_pricing_evaluator),
) -> BookingService:
    return BookingService(db_engine, store, pricing)


def get_hold_manager(
    db_engine: Engine = Depends(get_db_engine),
    store: ReservationStore = Depends(get_reservation_store),
) -> HoldManager:
    return HoldManager(db_engine, store)


def get_sync_engine(
    db_engine: Engine = Depends(get_db_engine),
    store: ReservationStore = Depends(get_reservation_store),
) -> SyncEngine:
    return SyncEngine(db_engine, store)
