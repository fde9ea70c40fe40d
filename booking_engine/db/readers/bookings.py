from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.engine import Connection, Row

from booking_engine.models.bookings import Booking, Guest
from booking_engine.models.enums import BookingStatus


def get_booking(conn: Connection, booking_id: UUID, for_update: bool = False) -> Optional[Row[Any]]:
    """
    Fetch a booking by ID.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        booking_id (UUID): Booking ID.
        for_update (bool): Lock the row for the rest of the transaction.

    Returns:
        Optional[Row]: Booking row or None
    """
    stmt = select(Booking).where(Booking.id == booking_id)
    if for_update:
        stmt = stmt.with_for_update()
    return conn.execute(stmt).fetchone()


def get_booking_by_idempotency_key(conn: Connection, key: str) -> Optional[Row[Any]]:
    """Fetch the booking created with the given idempotency key, if any."""
    return conn.execute(select(Booking).where(Booking.idempotency_key == key)).fetchone()


def get_booking_guests(conn: Connection, booking_id: UUID) -> list[Row[Any]]:
    """Guests of a booking, primary guest first."""
    result = conn.execute(
        select(Guest)
        .where(Guest.booking_id == booking_id)
        .order_by(Guest.is_primary.desc(), Guest.created_at)
    )
    return list(result.fetchall())


def get_confirmed_bookings(conn: Connection, property_id: UUID) -> list[Row[Any]]:
    """All confirmed bookings of a property ordered by check-in."""
    result = conn.execute(
        select(Booking)
        .where(
            Booking.property_id == property_id,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
        .order_by(Booking.start_date)
    )
    return list(result.fetchall())
