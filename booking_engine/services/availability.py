"""Merged availability across bookings, holds, external calendars and blackouts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.engine import Engine

from booking_engine.db.readers.availability import collect_blocking_ranges
from booking_engine.intervals import BlockingRange, DateRange
from booking_engine.utils.datetime import utc_now


@dataclass(frozen=True)
class Availability:
    available: bool
    blocking_ranges: list[BlockingRange]

    def as_dict(self) -> dict[str, object]:
        return {
            "available": self.available,
            "blockingRanges": [r.as_dict() for r in self.blocking_ranges],
        }


class AvailabilityResolver:
    """
    Answer "is this range free?" as a pure read.

    Uses the same definition of blocking as the reservation store, so a range
    reported available here can only be refused at booking time if another
    writer took it in between.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def is_available(
        self,
        property_id: UUID,
        stay: DateRange,
        ignore_hold_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Availability:
        now = now or utc_now()
        with self.engine.connect() as conn:
            blocking = collect_blocking_ranges(
                conn, property_id, stay, now, ignore_hold_reference=ignore_hold_reference
            )
        return Availability(available=not blocking, blocking_ranges=blocking)
