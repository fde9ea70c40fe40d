"""
Checkout holds: short-lived claims that block a stay while the guest pays.

Holds go through the reservation store like bookings, so two overlapping
unexpired holds can never coexist. An expired hold stops blocking at once
(every availability query filters on expires_at) and the periodic sweep
deletes the row.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine

from booking_engine.config import HOLD_TTL_MINUTES
from booking_engine.db.writers.holds import delete_expired_holds, delete_hold
from booking_engine.errors import InvalidRequestError
from booking_engine.intervals import DateRange
from booking_engine.metrics import holds_swept
from booking_engine.models.enums import HoldReason, ReservationKind
from booking_engine.services.reservations import ReservationStore, ReserveResult
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

DEFAULT_HOLD_TTL = timedelta(minutes=HOLD_TTL_MINUTES)


class HoldManager:
    def __init__(self, engine: Engine, store: Optional[ReservationStore] = None):
        self.engine = engine
        self.store = store or ReservationStore(engine)

    def create_hold(
        self,
        property_id: UUID,
        stay: DateRange,
        reference_id: str,
        ttl: timedelta = DEFAULT_HOLD_TTL,
        reason: HoldReason = HoldReason.CHECKOUT,
        now: Optional[datetime] = None,
    ) -> ReserveResult:
        """
        Place a hold on ``stay`` that expires after ``ttl``.

        Args:
            property_id: Property to hold
            stay: Half-open stay range
            reference_id: Checkout reference, later used as the booking's idempotency key
            ttl: Time until the hold stops blocking; zero is allowed
            reason: checkout, admin_block or maintenance
            now: Reference time

        Returns:
            Reservation (kind=hold) or ReservationConflict
        """
        if ttl < timedelta(0):
            raise InvalidRequestError("Hold TTL must not be negative")

        now = now or utc_now()
        return self.store.try_reserve(
            property_id,
            stay,
            ReservationKind.HOLD,
            idempotency_key=reference_id,
            values={"reason": reason, "expires_at": now + ttl},
            now=now,
        )

    def release_hold(self, hold_id: UUID) -> bool:
        """
        Delete a hold. Releasing an unknown or already released hold is a no-op.

        Returns:
            bool: True if a hold was removed
        """
        with self.engine.begin() as conn:
            removed = delete_hold(conn, hold_id)

        logger.info("hold_released", hold_id=str(hold_id), removed=removed)
        return removed

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every hold whose expiry has passed.

        Returns:
            int: Number of holds deleted
        """
        now = now or utc_now()
        with self.engine.begin() as conn:
            count = delete_expired_holds(conn, now)

        if count:
            holds_swept.inc(count)
            logger.info("expired_holds_swept", count=count)
        return count
