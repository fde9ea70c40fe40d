"""
Unit tests for the outbound iCal feed.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest
from icalendar import Calendar

from booking_engine.normalizers.ical import normalize_feed
from booking_engine.services.ical_export import booking_uid, build_property_feed

PROPERTY = SimpleNamespace(id=uuid.uuid4(), title="Ocean View Cottage")


def booking(start: date, end: date) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        start_date=start,
        end_date=end,
        updated_at=datetime(2030, 5, 1, 8, 30, tzinfo=timezone.utc),
    )


@pytest.mark.unit
def test_booking_uid_format() -> None:
    booking_id = uuid.UUID("6f9619ff-8b86-d011-b42d-00cf4fc964ff")

    assert (
        booking_uid(booking_id, "example.com")
        == "booking-6f9619ff-8b86-d011-b42d-00cf4fc964ff@example.com"
    )


@pytest.mark.unit
def test_feed_has_one_all_day_event_per_booking() -> None:
    first = booking(date(2030, 6, 5), date(2030, 6, 8))
    second = booking(date(2030, 7, 1), date(2030, 7, 4))

    body = build_property_feed(PROPERTY, [first, second], "example.com")
    cal = Calendar.from_ical(body)
    events = cal.walk("VEVENT")

    assert str(cal["X-WR-CALNAME"]) == "Ocean View Cottage"
    assert len(events) == 2
    assert str(events[0]["UID"]) == f"booking-{first.id}@example.com"
    assert events[0]["DTSTART"].dt == date(2030, 6, 5)
    assert events[0]["DTEND"].dt == date(2030, 6, 8)
    assert str(events[0]["TRANSP"]) == "OPAQUE"
    assert str(events[0]["SUMMARY"]) == "Reserved"


@pytest.mark.unit
def test_exported_feed_imports_as_blocking_reservations() -> None:
    """What we publish is read back by our own importer as blocking stays."""
    stay = booking(date(2030, 6, 5), date(2030, 6, 8))

    [event] = normalize_feed(build_property_feed(PROPERTY, [stay], "example.com"))

    assert (event.start, event.end) == (date(2030, 6, 5), date(2030, 6, 8))
    assert event.is_blocking


@pytest.mark.unit
def test_feed_without_bookings_is_valid() -> None:
    cal = Calendar.from_ical(build_property_feed(PROPERTY, [], "example.com"))

    assert cal.walk("VEVENT") == []
