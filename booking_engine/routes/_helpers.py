"""
Internal helper functions for route handlers.

Validation and serialization shared by the booking, hold and calendar routes.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.engine import Connection

from booking_engine.db.readers.calendars import get_calendar
from booking_engine.db.readers.properties import get_default_property
from booking_engine.intervals import DateRange
from booking_engine.services.reservations import ReservationConflict
from booking_engine.utils.datetime import ensure_utc


def parse_stay(start: date, end: date) -> DateRange:
    """
    Build the half-open stay range, rejecting end <= start with a 400.

    Raises:
        InvalidRequestError: end date is not after start date
    """
    return DateRange(start, end)


def resolve_property_id(conn: Connection, property_id: Optional[UUID]) -> UUID:
    """
    Return the requested property ID, or the site's property when omitted.

    Raises:
        HTTPException: 404 if no property is configured
    """
    if property_id is not None:
        return property_id

    prop = get_default_property(conn)
    if prop is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No property configured",
        )
    return prop.id


def get_calendar_or_404(conn: Connection, calendar_id: UUID) -> Any:
    """
    Fetch a calendar, raise 404 if it does not exist.

    Raises:
        HTTPException: 404 if the calendar doesn't exist
    """
    calendar = get_calendar(conn, calendar_id)
    if calendar is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Calendar {calendar_id} not found",
        )
    return calendar


def raise_conflict(conflict: ReservationConflict) -> None:
    """
    Turn a reservation conflict into a 409 listing the blocking ranges.

    The caller should re-quote rather than retry the same request.
    """
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": "Selected dates are not available",
            "blockingRanges": [r.as_dict() for r in conflict.blocking_ranges],
        },
    )


def _json_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def serialize_record(record: dict[str, Any], exclude: tuple[str, ...] = ()) -> dict[str, Any]:
    """Make a row mapping JSON-safe: UUIDs, decimals and dates become strings."""
    return {key: _json_value(value) for key, value in record.items() if key not in exclude}


def booking_summary(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "booking_id": str(record["id"]),
        "total": _json_value(record["total"]),
        "currency": record["currency"],
        "status": record["status"],
    }
