from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from sqlalchemy.engine import Engine

from booking_engine.db.readers.bookings import get_booking, get_booking_guests
from booking_engine.dependencies import get_booking_service, get_db_engine, get_reservation_store
from booking_engine.errors import BookingEngineError
from booking_engine.routes._helpers import (
    booking_summary,
    parse_stay,
    raise_conflict,
    resolve_property_id,
    serialize_record,
)
from booking_engine.schemas.bookings import BookingConfirmPayload, BookingCreatePayload
from booking_engine.services.bookings import BookingService
from booking_engine.services.reservations import ReservationConflict, ReservationStore

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreatePayload,
    response: Response,
    db_engine: Engine = Depends(get_db_engine),
    service: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    """
    Create a pending booking.

    Retrying with the same idempotency_key returns the original booking with
    200 instead of 201. Overlapping dates return 409 with the blocking ranges.

    Returns:
        dict: booking_id, total, currency, status
    """
    try:
        stay = parse_stay(payload.start_date, payload.end_date)
        with db_engine.connect() as conn:
            property_id = resolve_property_id(conn, payload.property_id)

        guest_info = [payload.guest_info.model_dump()]
        guest_info.extend(guest.model_dump() for guest in payload.additional_guests)

        result = service.create_booking(
            property_id,
            stay,
            payload.guests,
            guest_info,
            payload.idempotency_key,
            coupon_code=payload.coupon_code,
        )
        if isinstance(result, ReservationConflict):
            raise_conflict(result)

        if result.replayed:
            response.status_code = status.HTTP_200_OK
        return booking_summary(result.record)

    except HTTPException:
        raise
    except BookingEngineError:
        raise
    except Exception as e:
        logger.exception("booking_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/bookings/{booking_id}")
def get_booking_details(
    booking_id: UUID,
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Fetch a booking with its guests.

    Returns:
        dict: Booking columns plus a guests list, primary guest first
    """
    try:
        with db_engine.connect() as conn:
            booking = get_booking(conn, booking_id)
            if booking is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Booking {booking_id} not found",
                )
            guests = get_booking_guests(conn, booking_id)

        body = serialize_record(dict(booking._mapping))
        body["guests"] = [
            serialize_record(dict(guest._mapping), exclude=("booking_id",)) for guest in guests
        ]
        return body

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("booking_lookup_failed", booking_id=str(booking_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/bookings/{booking_id}/confirm")
def confirm_booking(
    booking_id: UUID,
    payload: Optional[BookingConfirmPayload] = Body(None),
    store: ReservationStore = Depends(get_reservation_store),
) -> dict[str, Any]:
    """
    Payment hook: mark a pending booking confirmed.

    Confirming an already confirmed booking returns it unchanged. A canceled
    booking, or dates taken since the booking was created, return 409.
    """
    try:
        result = store.confirm_booking(
            booking_id,
            payment_intent_id=payload.payment_intent_id if payload else None,
        )
        if isinstance(result, ReservationConflict):
            raise_conflict(result)
        return booking_summary(result.record)

    except HTTPException:
        raise
    except BookingEngineError:
        raise
    except Exception as e:
        logger.exception("booking_confirm_failed", booking_id=str(booking_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking(
    booking_id: UUID,
    store: ReservationStore = Depends(get_reservation_store),
) -> dict[str, Any]:
    """Cancel a booking and free its dates. Canceling twice is a no-op."""
    try:
        return booking_summary(store.cancel_booking(booking_id).record)

    except HTTPException:
        raise
    except BookingEngineError:
        raise
    except Exception as e:
        logger.exception("booking_cancel_failed", booking_id=str(booking_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
