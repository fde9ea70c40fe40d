from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class GuestInfo(BaseModel):
    """Contact details for one guest."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = Field(None, max_length=50)


class BookingCreatePayload(BaseModel):
    """
    Schema for creating a pending booking.
    idempotency_key makes retries safe: the same key always returns the same booking.
    """

    property_id: Optional[UUID] = Field(None, description="Defaults to the site's property")
    start_date: date = Field(..., description="Check-in date")
    end_date: date = Field(..., description="Check-out date (not occupied)")
    guests: int = Field(..., description="Number of guests")
    guest_info: GuestInfo = Field(..., description="Primary guest")
    additional_guests: list[GuestInfo] = Field(default_factory=list)
    coupon_code: Optional[str] = Field(None, max_length=64)
    idempotency_key: str = Field(..., min_length=1, max_length=255)


class BookingConfirmPayload(BaseModel):
    """Payment confirmation from the payment provider integration."""

    payment_intent_id: Optional[str] = Field(None, max_length=255)
