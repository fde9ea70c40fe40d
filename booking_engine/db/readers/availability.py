"""
Single definition of what blocks a date range.

Both the availability resolver (pure read) and the reservation store (inside
its write transaction) call collect_blocking_ranges so that the pre-check a
guest sees and the check that guards the insert can never disagree.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection

from booking_engine.intervals import BlockingRange, DateRange
from booking_engine.models.bookings import Booking
from booking_engine.models.calendars import ExternalCalendar, ExternalReservation
from booking_engine.models.enums import BlockSource, BookingStatus, ExternalStatus
from booking_engine.models.holds import Hold
from booking_engine.models.pricing import BlackoutDate


def _clip(stay: DateRange, start, end, source: BlockSource, reference) -> BlockingRange:
    return BlockingRange(
        start=max(stay.start, start),
        end=min(stay.end, end),
        source=source,
        reference=str(reference),
    )


def collect_blocking_ranges(
    conn: Connection,
    property_id: UUID,
    stay: DateRange,
    now: datetime,
    ignore_hold_reference: Optional[str] = None,
    include_holds: bool = True,
) -> list[BlockingRange]:
    """
    Collect every range that blocks ``stay`` for the property.

    Sources:
        - confirmed bookings
        - holds with expires_at > now (optionally excluding one reference)
        - blocking, non-cancelled reservations of active external calendars
        - blackout dates

    Args:
        conn: Active connection (may be inside a write transaction)
        property_id: Property to check
        stay: Half-open range being requested
        now: Reference time for hold expiry
        ignore_hold_reference: Holds with this reference_id are not conflicts
            (the caller's own checkout hold)
        include_holds: False when confirming payment, where holds never block

    Returns:
        list[BlockingRange]: Ranges clipped to ``stay``, sorted by (start, source)
    """
    ranges: list[BlockingRange] = []

    bookings = conn.execute(
        select(Booking.id, Booking.start_date, Booking.end_date).where(
            Booking.property_id == property_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.start_date < stay.end,
            Booking.end_date > stay.start,
        )
    )
    for row in bookings:
        ranges.append(_clip(stay, row.start_date, row.end_date, BlockSource.BOOKING, row.id))

    if include_holds:
        hold_query = select(Hold.id, Hold.start_date, Hold.end_date).where(
            Hold.property_id == property_id,
            Hold.expires_at > now,
            Hold.start_date < stay.end,
            Hold.end_date > stay.start,
        )
        if ignore_hold_reference:
            hold_query = hold_query.where(
                or_(Hold.reference_id.is_(None), Hold.reference_id != ignore_hold_reference)
            )
        for row in conn.execute(hold_query):
            ranges.append(_clip(stay, row.start_date, row.end_date, BlockSource.HOLD, row.id))

    externals = conn.execute(
        select(
            ExternalReservation.external_uid,
            ExternalReservation.start_date,
            ExternalReservation.end_date,
        )
        .join(ExternalCalendar, ExternalCalendar.id == ExternalReservation.calendar_id)
        .where(
            and_(
                ExternalCalendar.property_id == property_id,
                ExternalCalendar.active.is_(True),
                ExternalReservation.is_blocking.is_(True),
                ExternalReservation.status != ExternalStatus.CANCELLED.value,
                ExternalReservation.start_date < stay.end,
                ExternalReservation.end_date > stay.start,
            )
        )
    )
    for row in externals:
        ranges.append(
            _clip(stay, row.start_date, row.end_date, BlockSource.EXTERNAL, row.external_uid)
        )

    blackouts = conn.execute(
        select(BlackoutDate.id, BlackoutDate.start_date, BlackoutDate.end_date).where(
            BlackoutDate.property_id == property_id,
            BlackoutDate.start_date < stay.end,
            BlackoutDate.end_date > stay.start,
        )
    )
    for row in blackouts:
        ranges.append(_clip(stay, row.start_date, row.end_date, BlockSource.BLACKOUT, row.id))

    ranges.sort(key=lambda r: (r.start, r.source.value, r.reference))
    return ranges
