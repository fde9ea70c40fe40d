from datetime import timedelta
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_db_engine, get_hold_manager
from booking_engine.errors import BookingEngineError
from booking_engine.routes._helpers import (
    parse_stay,
    raise_conflict,
    resolve_property_id,
    serialize_record,
)
from booking_engine.schemas.holds import HoldCreatePayload
from booking_engine.services.holds import DEFAULT_HOLD_TTL, HoldManager
from booking_engine.services.reservations import ReservationConflict

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/holds", status_code=status.HTTP_201_CREATED)
def create_hold(
    payload: HoldCreatePayload,
    response: Response,
    db_engine: Engine = Depends(get_db_engine),
    holds: HoldManager = Depends(get_hold_manager),
) -> dict[str, Any]:
    """
    Hold a stay while the guest checks out.

    The hold blocks the dates until it expires or is released. Repeating the
    request with the same reference_id and dates returns the existing hold.

    Returns:
        dict: The hold row (id, dates, reason, reference_id, expires_at)
    """
    try:
        stay = parse_stay(payload.start_date, payload.end_date)
        with db_engine.connect() as conn:
            property_id = resolve_property_id(conn, payload.property_id)

        ttl = (
            timedelta(seconds=payload.ttl_seconds)
            if payload.ttl_seconds is not None
            else DEFAULT_HOLD_TTL
        )
        result = holds.create_hold(
            property_id, stay, payload.reference_id, ttl=ttl, reason=payload.reason
        )
        if isinstance(result, ReservationConflict):
            raise_conflict(result)

        if result.replayed:
            response.status_code = status.HTTP_200_OK
        return serialize_record(result.record)

    except HTTPException:
        raise
    except BookingEngineError:
        raise
    except Exception as e:
        logger.exception("hold_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/holds/{hold_id}")
def release_hold(
    hold_id: UUID,
    holds: HoldManager = Depends(get_hold_manager),
) -> dict[str, Any]:
    """Release a hold. Unknown or already released holds are not an error."""
    try:
        released = holds.release_hold(hold_id)
        return {"hold_id": str(hold_id), "released": released}

    except Exception as e:
        logger.exception("hold_release_failed", hold_id=str(hold_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/holds/purge")
def purge_expired_holds(holds: HoldManager = Depends(get_hold_manager)) -> dict[str, int]:
    """Delete expired holds now instead of waiting for the periodic sweep."""
    try:
        return {"deleted": holds.sweep_expired()}

    except Exception as e:
        logger.exception("hold_purge_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
