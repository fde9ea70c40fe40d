"""
Unit tests for FastAPI dependency injection.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_booking_service, get_db_engine, get_sync_engine
from booking_engine.services.bookings import BookingService
from booking_engine.services.sync import SyncEngine


@pytest.mark.unit
def test_get_db_engine_yields_process_engine() -> None:
    first = next(get_db_engine())
    second = next(get_db_engine())

    assert isinstance(first, Engine)
    assert first is second


@pytest.mark.unit
def test_services_pick_up_engine_override() -> None:
    app = FastAPI()

    @app.get("/wiring")
    def wiring(
        bookings: BookingService = Depends(get_booking_service),
        sync: SyncEngine = Depends(get_sync_engine),
    ) -> dict[str, bool]:
        return {
            "bookings": bookings.engine is mock_engine,
            "store": bookings.store.engine is mock_engine,
            "pricing": bookings.pricing.resolver.engine is mock_engine,
            "sync": sync.engine is mock_engine,
        }

    mock_engine = Mock(spec=Engine)
    app.dependency_overrides[get_db_engine] = lambda: mock_engine

    response = TestClient(app).get("/wiring")

    assert response.status_code == 200
    assert all(response.json().values())
