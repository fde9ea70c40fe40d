from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.engine import Connection, Row

from booking_engine.models.properties import Property


def get_property(conn: Connection, property_id: UUID) -> Optional[Row[Any]]:
    """
    Fetch a property row.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        property_id (UUID): Property ID

    Returns:
        Optional[Row]: The property row or None if not found
    """
    return conn.execute(select(Property).where(Property.id == property_id)).fetchone()


def lock_property(conn: Connection, property_id: UUID) -> bool:
    """
    Take a row lock on the property for the rest of the transaction.

    Serializes reservation writers across processes on PostgreSQL. SQLite
    ignores FOR UPDATE; there the in-process lock registry is the only guard.

    Returns:
        bool: False if the property does not exist
    """
    row = conn.execute(
        select(Property.id).where(Property.id == property_id).with_for_update()
    ).fetchone()
    return row is not None


def get_default_property(conn: Connection) -> Optional[Row[Any]]:
    """Return the oldest property; the public site sells exactly one."""
    return conn.execute(
        select(Property).order_by(Property.created_at, Property.id).limit(1)
    ).fetchone()
