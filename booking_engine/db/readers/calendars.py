from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.engine import Connection, Row

from booking_engine.models.calendars import ExternalCalendar, ExternalReservation, SyncRun


def get_calendar(conn: Connection, calendar_id: UUID) -> Optional[Row[Any]]:
    """
    Fetch an external calendar by ID.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        calendar_id (UUID): External calendar ID.

    Returns:
        Optional[Row]: Calendar row or None if not found
    """
    return conn.execute(
        select(ExternalCalendar).where(ExternalCalendar.id == calendar_id)
    ).fetchone()


def list_calendars(conn: Connection) -> list[Row[Any]]:
    """All external calendars, active or not, ordered by name."""
    result = conn.execute(select(ExternalCalendar).order_by(ExternalCalendar.name))
    return list(result.fetchall())


def get_due_calendar_ids(conn: Connection, now: datetime) -> list[UUID]:
    """
    IDs of calendars whose next sync is due.

    A calendar is due when it is active, sync is enabled, and next_sync_at is
    unset (never synced) or not in the future.
    """
    result = conn.execute(
        select(ExternalCalendar.id)
        .where(
            ExternalCalendar.active.is_(True),
            ExternalCalendar.sync_enabled.is_(True),
            or_(ExternalCalendar.next_sync_at.is_(None), ExternalCalendar.next_sync_at <= now),
        )
        .order_by(ExternalCalendar.next_sync_at.is_(None).desc(), ExternalCalendar.next_sync_at)
    )
    return list(result.scalars().all())


def get_external_reservations(conn: Connection, calendar_id: UUID) -> list[Row[Any]]:
    """Stored reservations of one calendar ordered by check-in."""
    result = conn.execute(
        select(ExternalReservation)
        .where(ExternalReservation.calendar_id == calendar_id)
        .order_by(ExternalReservation.start_date, ExternalReservation.external_uid)
    )
    return list(result.fetchall())


def count_external_reservations(conn: Connection) -> dict[UUID, int]:
    """Reservation count per calendar ID."""
    result = conn.execute(
        select(ExternalReservation.calendar_id, func.count()).group_by(
            ExternalReservation.calendar_id
        )
    )
    return {row[0]: int(row[1]) for row in result}


def list_sync_runs(conn: Connection, calendar_id: UUID, limit: int = 20) -> list[Row[Any]]:
    """Most recent sync runs of a calendar, newest first."""
    result = conn.execute(
        select(SyncRun)
        .where(SyncRun.calendar_id == calendar_id)
        .order_by(SyncRun.started_at.desc())
        .limit(limit)
    )
    return list(result.fetchall())


def get_latest_sync_statuses(conn: Connection) -> dict[UUID, str]:
    """Status of the most recent sync run per calendar."""
    latest = (
        select(SyncRun.calendar_id, func.max(SyncRun.started_at).label("started_at"))
        .group_by(SyncRun.calendar_id)
        .subquery()
    )
    result = conn.execute(
        select(SyncRun.calendar_id, SyncRun.status).join(
            latest,
            (SyncRun.calendar_id == latest.c.calendar_id)
            & (SyncRun.started_at == latest.c.started_at),
        )
    )
    return {row.calendar_id: row.status for row in result}
