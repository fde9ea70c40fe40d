from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Row

from booking_engine.models.holds import Hold


def get_hold(conn: Connection, hold_id: UUID) -> Optional[Row[Any]]:
    """Fetch a hold by ID."""
    return conn.execute(select(Hold).where(Hold.id == hold_id)).fetchone()


def find_active_hold(
    conn: Connection,
    property_id: UUID,
    reference_id: str,
    start_date: date,
    end_date: date,
    now: datetime,
) -> Optional[Row[Any]]:
    """
    Find an unexpired hold with the same reference and dates.

    Lets a client retry hold creation for the same checkout without
    conflicting with its own earlier hold.
    """
    return conn.execute(
        select(Hold).where(
            Hold.property_id == property_id,
            Hold.reference_id == reference_id,
            Hold.start_date == start_date,
            Hold.end_date == end_date,
            Hold.expires_at > now,
        )
    ).fetchone()


def count_active_holds(conn: Connection, now: datetime) -> int:
    """Number of holds that still block availability."""
    result = conn.execute(select(func.count()).select_from(Hold).where(Hold.expires_at > now))
    return int(result.scalar_one())
