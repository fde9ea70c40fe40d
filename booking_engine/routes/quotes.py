from datetime import date
from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_db_engine, get_pricing_evaluator
from booking_engine.errors import BookingEngineError
from booking_engine.routes._helpers import parse_stay, resolve_property_id
from booking_engine.schemas.quotes import QuoteResponse
from booking_engine.services.pricing import PricingEvaluator

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/quote")
def get_quote(
    start: date = Query(..., description="Check-in date"),
    end: date = Query(..., description="Check-out date"),
    guests: int = Query(1, description="Number of guests"),
    coupon: Optional[str] = Query(None, description="Coupon code"),
    property_id: Optional[UUID] = Query(None),
    db_engine: Engine = Depends(get_db_engine),
    pricing: PricingEvaluator = Depends(get_pricing_evaluator),
) -> dict[str, Any]:
    """
    Price a stay.

    A rejected coupon does not fail the quote: the quote comes back without the
    discount and with couponError set.

    Returns:
        dict: Itemized quote with camelCase keys; money values as decimal strings
    """
    try:
        stay = parse_stay(start, end)
        with db_engine.connect() as conn:
            resolved_id = resolve_property_id(conn, property_id)

        quote = pricing.quote(resolved_id, stay, guests, coupon_code=coupon)
        return QuoteResponse.from_quote(quote).model_dump(mode="json", by_alias=True)

    except HTTPException:
        raise
    except BookingEngineError:
        raise
    except Exception as e:
        logger.exception("quote_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
