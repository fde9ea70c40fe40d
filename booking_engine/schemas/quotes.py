from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from booking_engine.services.pricing import Quote


class CamelModel(BaseModel):
    """Responses consumed by the booking widget use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuoteLineResponse(CamelModel):
    label: str
    amount: Decimal


class CouponResponse(CamelModel):
    code: str
    type: str
    value: Decimal


class QuoteResponse(CamelModel):
    """
    Schema for a price quote.
    Money values are serialized as decimal strings with two places.
    """

    nights: int = Field(..., description="Number of nights in the stay")
    nightly_rate: Decimal = Field(..., description="Average nightly rate")
    subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    taxes: Decimal
    discount: Decimal = Field(..., description="Long-stay discount plus coupon discount")
    total: Decimal
    currency: str
    breakdown: list[QuoteLineResponse]
    coupon: Optional[CouponResponse] = None
    coupon_error: Optional[str] = None

    @classmethod
    def from_quote(cls, quote: Quote) -> "QuoteResponse":
        return cls(
            nights=quote.nights,
            nightly_rate=quote.nightly_rate,
            subtotal=quote.subtotal,
            cleaning_fee=quote.cleaning_fee,
            service_fee=quote.service_fee,
            taxes=quote.taxes,
            discount=quote.discount,
            total=quote.total,
            currency=quote.currency,
            breakdown=[
                QuoteLineResponse(label=line.label, amount=line.amount) for line in quote.breakdown
            ],
            coupon=CouponResponse(**quote.coupon) if quote.coupon else None,
            coupon_error=quote.coupon_error,
        )
