"""Direct booking creation: validate, price, then reserve atomically."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine

from booking_engine.db.readers.bookings import get_booking_by_idempotency_key
from booking_engine.errors import InvalidRequestError
from booking_engine.intervals import DateRange
from booking_engine.models.enums import ReservationKind
from booking_engine.services.pricing import PricingEvaluator
from booking_engine.services.reservations import (
    Reservation,
    ReservationStore,
    ReserveResult,
)

logger = structlog.get_logger(__name__)

REQUIRED_GUEST_FIELDS = ("first_name", "last_name", "email")


def validate_guest_info(guest_info: list[dict[str, Any]]) -> None:
    if not guest_info:
        raise InvalidRequestError("At least one guest is required")
    for guest in guest_info:
        missing = [name for name in REQUIRED_GUEST_FIELDS if not guest.get(name)]
        if missing:
            raise InvalidRequestError(f"Guest is missing {', '.join(missing)}")


class BookingService:
    """
    Create pending bookings.

    The flow is: replay check, quote (which re-validates availability while
    ignoring the guest's own checkout hold), then the reservation store's
    atomic check-and-insert. The pre-check gives a fast, detailed 409; the
    store's check is the one that guarantees no double booking.
    """

    def __init__(
        self,
        engine: Engine,
        store: Optional[ReservationStore] = None,
        pricing: Optional[PricingEvaluator] = None,
    ):
        self.engine = engine
        self.store = store or ReservationStore(engine)
        self.pricing = pricing or PricingEvaluator(engine)

    def create_booking(
        self,
        property_id: UUID,
        stay: DateRange,
        guests: int,
        guest_info: list[dict[str, Any]],
        idempotency_key: str,
        coupon_code: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ReserveResult:
        """
        Create a pending booking for ``stay``.

        Raises:
            InvalidRequestError: Bad dates, guest count or guest details
            DatesUnavailableError: The pre-check found a blocking range
        """
        if not idempotency_key:
            raise InvalidRequestError("idempotency_key is required")
        validate_guest_info(guest_info)

        with self.engine.connect() as conn:
            existing = get_booking_by_idempotency_key(conn, idempotency_key)
        if existing is not None:
            logger.info("booking_replayed", booking_id=str(existing.id))
            return Reservation(
                kind=ReservationKind.BOOKING,
                id=existing.id,
                property_id=existing.property_id,
                stay=DateRange(existing.start_date, existing.end_date),
                record=dict(existing._mapping),
                replayed=True,
            )

        quote = self.pricing.quote(
            property_id,
            stay,
            guests,
            coupon_code=coupon_code,
            today=today,
            ignore_hold_reference=idempotency_key,
        )

        result = self.store.try_reserve(
            property_id,
            stay,
            ReservationKind.BOOKING,
            idempotency_key=idempotency_key,
            values={
                "guests": guests,
                "subtotal": quote.subtotal,
                "taxes": quote.taxes,
                "fees": quote.fees,
                "discount": quote.discount,
                "total": quote.total,
                "currency": quote.currency,
                "coupon_code": quote.coupon["code"] if quote.coupon else None,
                "guest_info": guest_info,
            },
        )
        if isinstance(result, Reservation) and not result.replayed:
            logger.info(
                "booking_created",
                booking_id=str(result.id),
                total=str(quote.total),
                nights=quote.nights,
            )
        return result
