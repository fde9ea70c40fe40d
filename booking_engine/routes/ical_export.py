import hmac
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy.engine import Engine

from booking_engine.config import ICAL_SECRET_KEY, ICAL_UID_DOMAIN
from booking_engine.db.readers.bookings import get_confirmed_bookings
from booking_engine.db.readers.properties import get_property
from booking_engine.dependencies import get_db_engine
from booking_engine.services.ical_export import build_property_feed

logger = structlog.get_logger(__name__)
router = APIRouter()

ICAL_MEDIA_TYPE = "text/calendar; charset=utf-8"


@router.get("/ical/{property_id}.ics", response_class=Response)
def export_property_calendar(
    property_id: UUID,
    key: Optional[str] = Query(None, description="Shared feed secret"),
    db_engine: Engine = Depends(get_db_engine),
) -> Response:
    """
    Outbound iCal feed of confirmed bookings for Airbnb/VRBO to import.

    Returns 503 while no feed secret is configured and 401 for a wrong key.
    """
    if not ICAL_SECRET_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="iCal export is not configured",
        )
    if not key or not hmac.compare_digest(key, ICAL_SECRET_KEY):
        logger.warning("ical_export_rejected", property_id=str(property_id))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid feed key")

    try:
        with db_engine.connect() as conn:
            prop = get_property(conn, property_id)
            if prop is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Property {property_id} not found",
                )
            bookings = get_confirmed_bookings(conn, property_id)

        body = build_property_feed(prop, bookings, ICAL_UID_DOMAIN)
        logger.info("ical_exported", property_id=str(property_id), events=len(bookings))
        return Response(content=body, media_type=ICAL_MEDIA_TYPE)

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("ical_export_failed", property_id=str(property_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
