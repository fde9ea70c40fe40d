from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from booking_engine.models.bookings import Booking, Guest
from booking_engine.models.pricing import Coupon


def insert_booking(conn: Connection, row: dict[str, Any]) -> None:
    """
    Insert a booking row.

    Args:
        conn (Connection): SQLAlchemy DB connection inside the reservation transaction.
        row (dict): Column values, including a pre-generated id.
    """
    conn.execute(insert(Booking).values(**row))


def insert_guests(
    conn: Connection, booking_id: UUID, guests: list[dict[str, Any]], now: datetime
) -> None:
    """
    Insert guest contact rows for a booking. The first guest is the primary one.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        booking_id (UUID): Booking the guests belong to.
        guests (list[dict]): first_name, last_name, email and optional phone per guest.
        now (datetime): Creation timestamp.
    """
    if not guests:
        return

    rows = [
        {
            "booking_id": booking_id,
            "first_name": guest["first_name"],
            "last_name": guest["last_name"],
            "email": guest["email"],
            "phone": guest.get("phone"),
            "is_primary": index == 0,
            "created_at": now,
        }
        for index, guest in enumerate(guests)
    ]
    conn.execute(insert(Guest), rows)


def update_booking_status(
    conn: Connection,
    booking_id: UUID,
    status: str,
    now: datetime,
    payment_intent_id: Optional[str] = None,
) -> None:
    """
    Set a booking's status, recording the payment reference when provided.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        booking_id (UUID): Booking ID.
        status (str): New status value.
        now (datetime): Update timestamp.
        payment_intent_id (Optional[str]): Payment provider reference.
    """
    values: dict[str, Any] = {"status": status, "updated_at": now}
    if payment_intent_id:
        values["payment_intent_id"] = payment_intent_id

    conn.execute(update(Booking).where(Booking.id == booking_id).values(**values))


def increment_coupon_usage(conn: Connection, code: str) -> None:
    """Count one more confirmed booking against a coupon."""
    conn.execute(
        update(Coupon).where(Coupon.code == code).values(used_count=Coupon.used_count + 1)
    )
