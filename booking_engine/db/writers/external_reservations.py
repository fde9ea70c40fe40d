from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection

from booking_engine.models.calendars import ExternalReservation
from booking_engine.normalizers.ical import ExternalEvent


def _event_values(event: ExternalEvent) -> dict[str, Any]:
    return {
        "start_date": event.start,
        "end_date": event.end,
        "status": event.status.value,
        "is_blocking": event.is_blocking,
        "title": event.title,
        "description": event.description,
        "raw_event": event.raw_event,
    }


def insert_external_reservations(
    conn: Connection, calendar_id: UUID, events: Iterable[ExternalEvent], now: datetime
) -> int:
    """
    Insert newly seen external events.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        calendar_id (UUID): Calendar the events came from.
        events (Iterable[ExternalEvent]): Normalized events with UIDs not yet stored.
        now (datetime): Timestamp for created_at/updated_at.

    Returns:
        int: Number of rows inserted
    """
    rows = [
        {
            "calendar_id": calendar_id,
            "external_uid": event.external_uid,
            "created_at": now,
            "updated_at": now,
            **_event_values(event),
        }
        for event in events
    ]
    if not rows:
        return 0

    conn.execute(insert(ExternalReservation), rows)
    return len(rows)


def update_external_reservation(
    conn: Connection, calendar_id: UUID, event: ExternalEvent, now: datetime
) -> None:
    """Overwrite a stored event with its latest remote version."""
    conn.execute(
        update(ExternalReservation)
        .where(
            ExternalReservation.calendar_id == calendar_id,
            ExternalReservation.external_uid == event.external_uid,
        )
        .values(updated_at=now, **_event_values(event))
    )


def delete_external_reservations(conn: Connection, calendar_id: UUID, uids: list[str]) -> int:
    """
    Delete events that disappeared from the remote feed.

    Returns:
        int: Number of rows removed
    """
    if not uids:
        return 0

    result = conn.execute(
        delete(ExternalReservation).where(
            ExternalReservation.calendar_id == calendar_id,
            ExternalReservation.external_uid.in_(uids),
        )
    )
    return int(result.rowcount)


def delete_external_reservation(
    conn: Connection, calendar_id: UUID, reservation_id: UUID
) -> bool:
    """Delete a single imported reservation of a calendar (admin cleanup)."""
    result = conn.execute(
        delete(ExternalReservation).where(
            ExternalReservation.id == reservation_id,
            ExternalReservation.calendar_id == calendar_id,
        )
    )
    return result.rowcount > 0
