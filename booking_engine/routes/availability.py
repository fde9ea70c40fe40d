from datetime import date
from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_availability_resolver, get_db_engine
from booking_engine.errors import BookingEngineError
from booking_engine.routes._helpers import parse_stay, resolve_property_id
from booking_engine.services.availability import AvailabilityResolver

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/availability")
def get_availability(
    start: date = Query(..., description="First night"),
    end: date = Query(..., description="Day after the last night"),
    property_id: Optional[UUID] = Query(None),
    db_engine: Engine = Depends(get_db_engine),
    resolver: AvailabilityResolver = Depends(get_availability_resolver),
) -> dict[str, Any]:
    """
    Report whether [start, end) is free and which ranges block it.

    Returns:
        dict: {"available": bool, "blockingRanges": [{start, end, source, reference}]}
    """
    try:
        stay = parse_stay(start, end)
        with db_engine.connect() as conn:
            resolved_id = resolve_property_id(conn, property_id)

        return resolver.is_available(resolved_id, stay).as_dict()

    except HTTPException:
        raise
    except BookingEngineError:
        raise
    except Exception as e:
        logger.exception("availability_check_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
