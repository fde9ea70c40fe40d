from __future__ import annotations

import uuid
from datetime import date
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from booking_engine.db.locks import calendar_locks
from booking_engine.models.enums import ExternalStatus
from booking_engine.network.feed_client import FeedResponse
from booking_engine.normalizers.ical import ExternalEvent
from booking_engine.pollers.calendars import PollResult

CALENDARS = "/api/v1/calendars"


def feed_with(*uids: str) -> PollResult:
    response = FeedResponse(
        status_code=200,
        body=b"BEGIN:VCALENDAR",
        etag='"abc"',
        last_modified=None,
        response_time_ms=12,
    )
    events = [
        ExternalEvent(
            external_uid=uid,
            start=date(2030, 7, 1 + 5 * index),
            end=date(2030, 7, 4 + 5 * index),
            status=ExternalStatus.RESERVED,
            is_blocking=True,
            title="Reserved",
        )
        for index, uid in enumerate(uids)
    ]
    return PollResult(response=response, events=events)


@pytest.fixture
def calendar_id(seed: Any, property_id: uuid.UUID) -> uuid.UUID:
    return seed.calendar(property_id)


@pytest.mark.integration
def test_manual_sync_runs_in_background(client: TestClient, calendar_id: uuid.UUID) -> None:
    with patch("booking_engine.services.sync.poll_calendar", return_value=feed_with("a", "b")):
        response = client.post(f"{CALENDARS}/{calendar_id}/sync")

    assert response.status_code == 202
    reservations = client.get(f"{CALENDARS}/{calendar_id}/reservations").json()
    assert [r["external_uid"] for r in reservations] == ["a", "b"]
    assert "raw_event" not in reservations[0]

    [run] = client.get(f"{CALENDARS}/{calendar_id}/sync-runs").json()
    assert run["status"] == "success"
    assert run["reservations_imported"] == 2


@pytest.mark.integration
def test_manual_dry_run_imports_nothing(client: TestClient, calendar_id: uuid.UUID) -> None:
    with patch("booking_engine.services.sync.poll_calendar", return_value=feed_with("a")):
        response = client.post(f"{CALENDARS}/{calendar_id}/sync", params={"dry_run": "true"})

    assert response.status_code == 202
    assert client.get(f"{CALENDARS}/{calendar_id}/reservations").json() == []


@pytest.mark.integration
def test_manual_sync_unknown_calendar_is_404(client: TestClient) -> None:
    assert client.post(f"{CALENDARS}/{uuid.uuid4()}/sync").status_code == 404


@pytest.mark.integration
@pytest.mark.parametrize("flags", [{"active": False}, {"sync_enabled": False}])
def test_manual_sync_of_disabled_calendar_is_400(
    client: TestClient, seed: Any, property_id: uuid.UUID, flags: dict[str, bool]
) -> None:
    calendar_id = seed.calendar(property_id, **flags)

    assert client.post(f"{CALENDARS}/{calendar_id}/sync").status_code == 400


@pytest.mark.integration
def test_manual_sync_while_running_is_409(client: TestClient, calendar_id: uuid.UUID) -> None:
    lock = calendar_locks.get(calendar_id)
    lock.acquire()
    try:
        response = client.post(f"{CALENDARS}/{calendar_id}/sync")
        status = client.get(f"{CALENDARS}/{calendar_id}/status").json()
    finally:
        lock.release()

    assert response.status_code == 409
    assert status["sync_in_progress"] is True


@pytest.mark.integration
def test_calendar_status_hides_feed_secrets(
    client: TestClient, seed: Any, calendar_id: uuid.UUID
) -> None:
    seed.external_reservation(calendar_id, "a", date(2030, 7, 1), date(2030, 7, 4))

    body = client.get(f"{CALENDARS}/{calendar_id}/status").json()

    assert body["id"] == str(calendar_id)
    assert body["reservations_count"] == 1
    assert body["health_score"] == 100
    assert body["sync_in_progress"] is False
    assert "ical_url" not in body
    assert "etag" not in body


@pytest.mark.integration
def test_calendars_health(client: TestClient, calendar_id: uuid.UUID) -> None:
    body = client.get(f"{CALENDARS}/health").json()

    assert body["overall_health"] == 100
    assert [c["id"] for c in body["calendars"]] == [str(calendar_id)]


@pytest.mark.integration
def test_sync_runs_limit_is_validated(client: TestClient, calendar_id: uuid.UUID) -> None:
    response = client.get(f"{CALENDARS}/{calendar_id}/sync-runs", params={"limit": 0})

    assert response.status_code == 422


@pytest.mark.integration
def test_delete_imported_reservation(
    client: TestClient, seed: Any, property_id: uuid.UUID, calendar_id: uuid.UUID
) -> None:
    reservation_id = seed.external_reservation(
        calendar_id, "a", date(2030, 7, 1), date(2030, 7, 4)
    )
    other_calendar = seed.calendar(property_id, platform="vrbo", name="VRBO")

    wrong_calendar = client.delete(f"{CALENDARS}/{other_calendar}/reservations/{reservation_id}")
    deleted = client.delete(f"{CALENDARS}/{calendar_id}/reservations/{reservation_id}")
    again = client.delete(f"{CALENDARS}/{calendar_id}/reservations/{reservation_id}")

    assert wrong_calendar.status_code == 404
    assert deleted.status_code == 200
    assert again.status_code == 404
