"""
Quotes through the database: rule loading, coupon lookup and the
availability check that runs before pricing.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy.engine import Engine

from booking_engine.errors import DatesUnavailableError, InvalidRequestError, NotFoundError
from booking_engine.intervals import DateRange
from booking_engine.services.pricing import PricingEvaluator

TODAY = date(2030, 6, 1)


@pytest.fixture
def stay(future_wednesday: date) -> DateRange:
    return DateRange(future_wednesday, future_wednesday + timedelta(days=3))


@pytest.mark.integration
def test_standard_three_night_quote(
    db_engine: Engine, priced_property: uuid.UUID, stay: DateRange
) -> None:
    quote = PricingEvaluator(db_engine).quote(priced_property, stay, guests=2, today=TODAY)

    assert quote.subtotal == Decimal("1400.00")
    assert quote.cleaning_fee == Decimal("150.00")
    assert quote.service_fee == Decimal("210.00")
    assert quote.taxes == Decimal("253.79")
    assert quote.total == Decimal("2013.79")


@pytest.mark.integration
def test_inactive_rules_are_ignored(
    db_engine: Engine, seed: Any, property_id: uuid.UUID, stay: DateRange
) -> None:
    seed.rule(property_id, "base", 300)
    seed.rule(property_id, "cleaning_fee", 999, active=False)

    quote = PricingEvaluator(db_engine).quote(property_id, stay, guests=1, today=TODAY)

    assert quote.cleaning_fee == Decimal("0")
    assert quote.total == Decimal("900.00")


@pytest.mark.integration
def test_coupon_is_looked_up_and_applied(
    db_engine: Engine, seed: Any, priced_property: uuid.UUID, stay: DateRange
) -> None:
    seed.coupon("ALOHA10", "percent", 10)

    quote = PricingEvaluator(db_engine).quote(
        priced_property, stay, guests=2, coupon_code="ALOHA10", today=TODAY
    )

    assert quote.coupon == {"code": "ALOHA10", "type": "percent", "value": Decimal("10.00")}
    assert quote.discount == Decimal("140.00")
    assert quote.total == Decimal("1873.79")


@pytest.mark.integration
def test_exhausted_coupon_is_reported_not_raised(
    db_engine: Engine, seed: Any, priced_property: uuid.UUID, stay: DateRange
) -> None:
    seed.coupon("ONCE", "fixed", 50, usage_limit=1, used_count=1)

    quote = PricingEvaluator(db_engine).quote(
        priced_property, stay, guests=2, coupon_code="ONCE", today=TODAY
    )

    assert quote.coupon is None
    assert quote.coupon_error is not None
    assert quote.total == Decimal("2013.79")


@pytest.mark.integration
def test_past_check_in_is_rejected(db_engine: Engine, priced_property: uuid.UUID) -> None:
    stay = DateRange(date(2030, 5, 30), date(2030, 6, 2))

    with pytest.raises(InvalidRequestError, match="past"):
        PricingEvaluator(db_engine).quote(priced_property, stay, guests=2, today=TODAY)


@pytest.mark.integration
@pytest.mark.parametrize("guests", [0, 7])
def test_guest_count_outside_property_limit(
    db_engine: Engine, priced_property: uuid.UUID, stay: DateRange, guests: int
) -> None:
    with pytest.raises(InvalidRequestError, match="Guests"):
        PricingEvaluator(db_engine).quote(priced_property, stay, guests=guests, today=TODAY)


@pytest.mark.integration
def test_unknown_property(db_engine: Engine, stay: DateRange) -> None:
    with pytest.raises(NotFoundError):
        PricingEvaluator(db_engine).quote(uuid.uuid4(), stay, guests=1, today=TODAY)


@pytest.mark.integration
def test_blocked_dates_raise_with_ranges(
    db_engine: Engine, seed: Any, priced_property: uuid.UUID, stay: DateRange
) -> None:
    seed.blackout(priced_property, date(2030, 6, 6), date(2030, 6, 7))

    with pytest.raises(DatesUnavailableError) as exc_info:
        PricingEvaluator(db_engine).quote(priced_property, stay, guests=2, today=TODAY)

    [blocking] = exc_info.value.blocking_ranges
    assert blocking.as_dict()["source"] == "blackout"
