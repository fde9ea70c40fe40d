from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, insert
from sqlalchemy.engine import Connection

from booking_engine.models.holds import Hold


def insert_hold(conn: Connection, row: dict[str, Any]) -> None:
    """Insert a hold row (id is pre-generated by the caller)."""
    conn.execute(insert(Hold).values(**row))


def delete_hold(conn: Connection, hold_id: UUID) -> bool:
    """
    Delete a hold by ID.

    Returns:
        bool: True if a row was removed
    """
    result = conn.execute(delete(Hold).where(Hold.id == hold_id))
    return result.rowcount > 0


def delete_expired_holds(conn: Connection, now: datetime) -> int:
    """
    Delete holds whose expiry is not in the future.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        now (datetime): Reference time.

    Returns:
        int: Number of holds removed
    """
    result = conn.execute(delete(Hold).where(Hold.expires_at <= now))
    return int(result.rowcount)


def delete_holds_for_reference(conn: Connection, property_id: UUID, reference_id: str) -> int:
    """Delete the checkout holds consumed by a confirmed booking."""
    result = conn.execute(
        delete(Hold).where(Hold.property_id == property_id, Hold.reference_id == reference_id)
    )
    return int(result.rowcount)
