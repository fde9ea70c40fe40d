from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from booking_engine.models.enums import HoldReason


class HoldCreatePayload(BaseModel):
    """
    Schema for placing a hold. reference_id should be the idempotency key the
    booking will later be created with, so the booking can consume the hold.
    """

    property_id: Optional[UUID] = Field(None, description="Defaults to the site's property")
    start_date: date
    end_date: date
    reference_id: str = Field(..., min_length=1, max_length=255)
    ttl_seconds: Optional[int] = Field(None, ge=0, le=24 * 3600)
    reason: HoldReason = HoldReason.CHECKOUT
