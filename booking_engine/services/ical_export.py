"""Outbound iCal feed of confirmed bookings for external platforms to import."""

from __future__ import annotations

from typing import Any, Iterable

from icalendar import Calendar, Event

from booking_engine.utils.datetime import ensure_utc, utc_now

PRODID = "-//booking-engine//availability//EN"


def booking_uid(booking_id: Any, uid_domain: str) -> str:
    return f"booking-{booking_id}@{uid_domain}"


def build_property_feed(prop: Any, bookings: Iterable[Any], uid_domain: str) -> bytes:
    """
    Render confirmed bookings as an iCalendar document.

    Each booking becomes an all-day, opaque VEVENT so Airbnb and VRBO block
    the dates. Guest details are never exported.

    Args:
        prop: Property row (title)
        bookings: Confirmed booking rows
        uid_domain: Domain used in event UIDs

    Returns:
        bytes: text/calendar body
    """
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", prop.title)

    generated_at = utc_now()
    for booking in bookings:
        event = Event()
        event.add("uid", booking_uid(booking.id, uid_domain))
        event.add("dtstamp", ensure_utc(booking.updated_at) or generated_at)
        event.add("dtstart", booking.start_date)
        event.add("dtend", booking.end_date)
        event.add("summary", "Reserved")
        event.add("status", "CONFIRMED")
        event.add("transp", "OPAQUE")
        cal.add_component(event)

    return cal.to_ical()
