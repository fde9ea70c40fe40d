from __future__ import annotations

import uuid
from typing import Any

import pytest
from fastapi.testclient import TestClient

BOOKINGS = "/api/v1/bookings"
HOLDS = "/api/v1/holds"


def booking_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "start_date": "2030-06-05",
        "end_date": "2030-06-08",
        "guests": 2,
        "guest_info": {
            "first_name": "Leilani",
            "last_name": "Kahale",
            "email": "leilani@example.com",
            "phone": "+1 808 555 0100",
        },
        "idempotency_key": "checkout-1",
    }
    payload.update(overrides)
    return payload


@pytest.mark.integration
def test_create_booking_then_replay(client: TestClient, priced_property: uuid.UUID) -> None:
    created = client.post(BOOKINGS, json=booking_payload())
    replayed = client.post(BOOKINGS, json=booking_payload())

    assert created.status_code == 201
    assert created.json()["status"] == "pending"
    assert created.json()["total"] == "2013.79"
    assert created.json()["currency"] == "USD"
    assert replayed.status_code == 200
    assert replayed.json()["booking_id"] == created.json()["booking_id"]


@pytest.mark.integration
def test_get_booking_includes_guests(client: TestClient, priced_property: uuid.UUID) -> None:
    extra = {"first_name": "Keoni", "last_name": "Kahale", "email": "keoni@example.com"}
    booking_id = client.post(
        BOOKINGS, json=booking_payload(additional_guests=[extra])
    ).json()["booking_id"]

    response = client.get(f"{BOOKINGS}/{booking_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == booking_id
    assert body["start_date"] == "2030-06-05"
    assert body["nights"] == 3
    assert [g["first_name"] for g in body["guests"]] == ["Leilani", "Keoni"]
    assert body["guests"][0]["is_primary"] is True


@pytest.mark.integration
def test_get_unknown_booking_is_404(client: TestClient) -> None:
    assert client.get(f"{BOOKINGS}/{uuid.uuid4()}").status_code == 404


@pytest.mark.integration
def test_payload_validation_is_422(client: TestClient, priced_property: uuid.UUID) -> None:
    bad_email = booking_payload(
        guest_info={"first_name": "A", "last_name": "B", "email": "not-an-email"}
    )

    assert client.post(BOOKINGS, json=bad_email).status_code == 422
    assert client.post(BOOKINGS, json=booking_payload(idempotency_key="")).status_code == 422


@pytest.mark.integration
def test_booking_over_another_checkout_hold_is_409(
    client: TestClient, priced_property: uuid.UUID
) -> None:
    hold = client.post(
        HOLDS,
        json={"start_date": "2030-06-06", "end_date": "2030-06-09", "reference_id": "other"},
    )
    assert hold.status_code == 201

    response = client.post(BOOKINGS, json=booking_payload())

    assert response.status_code == 409
    [blocking] = response.json()["detail"]["blockingRanges"]
    assert blocking["source"] == "hold"
    assert blocking["reference"] == hold.json()["id"]


@pytest.mark.integration
def test_checkout_flow_hold_book_confirm(client: TestClient, priced_property: uuid.UUID) -> None:
    hold = client.post(
        HOLDS,
        json={"start_date": "2030-06-05", "end_date": "2030-06-08", "reference_id": "checkout-1"},
    )
    booking_id = client.post(BOOKINGS, json=booking_payload()).json()["booking_id"]

    confirmed = client.post(
        f"{BOOKINGS}/{booking_id}/confirm", json={"payment_intent_id": "pi_123"}
    )
    again = client.post(f"{BOOKINGS}/{booking_id}/confirm")

    assert hold.status_code == 201
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert again.status_code == 200
    assert client.get(f"{BOOKINGS}/{booking_id}").json()["payment_intent_id"] == "pi_123"

    availability = client.get(
        "/api/v1/availability", params={"start": "2030-06-05", "end": "2030-06-08"}
    ).json()
    assert [r["source"] for r in availability["blockingRanges"]] == ["booking"]


@pytest.mark.integration
def test_confirm_after_dates_taken_is_409(client: TestClient, priced_property: uuid.UUID) -> None:
    first = client.post(BOOKINGS, json=booking_payload(idempotency_key="a")).json()
    second = client.post(BOOKINGS, json=booking_payload(idempotency_key="b")).json()

    assert client.post(f"{BOOKINGS}/{first['booking_id']}/confirm").status_code == 200
    response = client.post(f"{BOOKINGS}/{second['booking_id']}/confirm")

    assert response.status_code == 409
    assert response.json()["detail"]["blockingRanges"][0]["source"] == "booking"


@pytest.mark.integration
def test_canceled_booking_cannot_be_confirmed(
    client: TestClient, priced_property: uuid.UUID
) -> None:
    booking_id = client.post(BOOKINGS, json=booking_payload()).json()["booking_id"]

    canceled = client.post(f"{BOOKINGS}/{booking_id}/cancel")
    response = client.post(f"{BOOKINGS}/{booking_id}/confirm")

    assert canceled.json()["status"] == "canceled"
    assert response.status_code == 409


@pytest.mark.integration
def test_confirm_unknown_booking_is_404(client: TestClient) -> None:
    assert client.post(f"{BOOKINGS}/{uuid.uuid4()}/confirm").status_code == 404


@pytest.mark.integration
def test_hold_replay_release_and_purge(client: TestClient, property_id: uuid.UUID) -> None:
    payload = {"start_date": "2030-06-05", "end_date": "2030-06-08", "reference_id": "r-1"}

    created = client.post(HOLDS, json=payload)
    replayed = client.post(HOLDS, json=payload)
    hold_id = created.json()["id"]

    assert created.status_code == 201
    assert created.json()["reason"] == "checkout"
    assert replayed.status_code == 200
    assert replayed.json()["id"] == hold_id

    assert client.delete(f"{HOLDS}/{hold_id}").json() == {"hold_id": hold_id, "released": True}
    assert client.delete(f"{HOLDS}/{hold_id}").json()["released"] is False


@pytest.mark.integration
def test_zero_ttl_hold_is_purged(client: TestClient, property_id: uuid.UUID) -> None:
    payload = {
        "start_date": "2030-06-05",
        "end_date": "2030-06-08",
        "reference_id": "r-1",
        "ttl_seconds": 0,
    }

    assert client.post(HOLDS, json=payload).status_code == 201
    assert client.post(f"{HOLDS}/purge").json() == {"deleted": 1}


@pytest.mark.integration
def test_hold_ttl_out_of_range_is_422(client: TestClient, property_id: uuid.UUID) -> None:
    payload = {
        "start_date": "2030-06-05",
        "end_date": "2030-06-08",
        "reference_id": "r-1",
        "ttl_seconds": -5,
    }

    assert client.post(HOLDS, json=payload).status_code == 422
