"""
Deterministic price quotes from layered pricing rules.

Per night: base rate, replaced by a matching seasonal rate, plus the weekend
premium on Friday and Saturday nights. On the stay: long-stay discount,
cleaning fee, service fee, the three Hawaii taxes and finally the coupon.
All arithmetic is Decimal, rounded half-up to cents, so the same inputs and
rules always give the same quote.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine

from booking_engine.config import DEFAULT_CURRENCY
from booking_engine.db.readers.pricing import get_active_rules, get_coupon_by_code
from booking_engine.db.readers.properties import get_property
from booking_engine.errors import DatesUnavailableError, InvalidRequestError, NotFoundError
from booking_engine.intervals import DateRange
from booking_engine.metrics import quotes
from booking_engine.models.enums import CouponType, RuleType
from booking_engine.services.availability import AvailabilityResolver
from booking_engine.utils.datetime import ensure_utc, utc_today

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Friday and Saturday nights (date.weekday())
WEEKEND_NIGHTS = (4, 5)

TAX_RULES = (
    (RuleType.TAT_RATE, "TAT (Transient Accommodations Tax)"),
    (RuleType.GET_RATE, "GET (General Excise Tax)"),
    (RuleType.COUNTY_TAX_RATE, "County Tax"),
)


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(raw: Any, rule_id: Any = None, rule_type: Any = None) -> Decimal:
    """Parse a stored rule value; anything missing or unparsable counts as 0."""
    if raw is None:
        logger.warning("pricing_rule_value_defaulted", rule_id=str(rule_id), rule_type=rule_type)
        return ZERO
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        value = None
    if value is None or not value.is_finite():
        logger.warning(
            "pricing_rule_value_defaulted",
            rule_id=str(rule_id),
            rule_type=rule_type,
            raw=str(raw),
        )
        return ZERO
    return value


@dataclass(frozen=True)
class PricingRuleSpec:
    id: str
    rule_type: RuleType
    value: Decimal
    percentage: bool = False
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_nights: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> Optional[PricingRuleSpec]:
        try:
            rule_type = RuleType(row.rule_type)
        except ValueError:
            logger.warning(
                "pricing_rule_unknown_type", rule_id=str(row.id), rule_type=row.rule_type
            )
            return None
        return cls(
            id=str(row.id),
            rule_type=rule_type,
            value=to_decimal(row.value, row.id, row.rule_type),
            percentage=bool(row.percentage),
            start_date=row.start_date,
            end_date=row.end_date,
            min_nights=row.min_nights,
            created_at=ensure_utc(row.created_at),
        )

    def amount_of(self, base: Decimal) -> Decimal:
        """The rule's value as a flat amount, or as a percentage of ``base``."""
        if self.percentage:
            return base * self.value / HUNDRED
        return self.value

    @property
    def rate(self) -> Decimal:
        """Tax rate as a fraction: whole percentage when flagged, else already a fraction."""
        return self.value / HUNDRED if self.percentage else self.value


@dataclass(frozen=True)
class CouponSpec:
    code: str
    type: CouponType
    value: Decimal
    active: bool = True
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_nights: Optional[int] = None
    usage_limit: Optional[int] = None
    used_count: int = 0

    @classmethod
    def from_row(cls, row: Any) -> CouponSpec:
        return cls(
            code=row.code,
            type=CouponType(row.type),
            value=to_decimal(row.value, row.id, "coupon"),
            active=bool(row.active),
            start_date=row.start_date,
            end_date=row.end_date,
            min_nights=row.min_nights,
            usage_limit=row.usage_limit,
            used_count=row.used_count or 0,
        )

    def rejection_reason(self, nights: int, today: date) -> Optional[str]:
        if not self.active:
            return "Coupon is not active"
        if self.start_date and today < self.start_date:
            return "Coupon is not valid yet"
        if self.end_date and today > self.end_date:
            return "Coupon has expired"
        if self.min_nights and nights < self.min_nights:
            return f"Coupon requires a minimum stay of {self.min_nights} nights"
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            return "Coupon usage limit reached"
        return None


def _newest_first(rule: PricingRuleSpec) -> tuple[datetime, str]:
    return (rule.created_at or EPOCH, rule.id)


class RuleSet:
    """Active rules grouped by type, newest first within each type."""

    def __init__(self, rules: Iterable[PricingRuleSpec]):
        ordered = sorted(rules, key=_newest_first, reverse=True)
        self._by_type: dict[RuleType, list[PricingRuleSpec]] = {}
        for rule in ordered:
            self._by_type.setdefault(rule.rule_type, []).append(rule)

    def first(self, rule_type: RuleType) -> Optional[PricingRuleSpec]:
        rules = self._by_type.get(rule_type)
        return rules[0] if rules else None

    def all(self, rule_type: RuleType) -> list[PricingRuleSpec]:
        return list(self._by_type.get(rule_type, []))


def pick_seasonal_rule(rules: RuleSet, night: date) -> Optional[PricingRuleSpec]:
    """
    The seasonal rule for a night: its inclusive window contains the night.

    When windows overlap, the most recently created rule wins.
    """
    for rule in rules.all(RuleType.SEASONAL):
        if rule.start_date is None or rule.end_date is None:
            continue
        if rule.start_date <= night <= rule.end_date:
            return rule
    return None


@dataclass(frozen=True)
class QuoteLine:
    label: str
    amount: Decimal


@dataclass(frozen=True)
class Quote:
    nights: int
    nightly_rate: Decimal
    subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    taxes: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    breakdown: list[QuoteLine] = field(default_factory=list)
    coupon: Optional[dict[str, Any]] = None
    coupon_error: Optional[str] = None

    @property
    def fees(self) -> Decimal:
        return self.cleaning_fee + self.service_fee


def _nightly_rates(rules: RuleSet, stay: DateRange) -> list[Decimal]:
    base_rule = rules.first(RuleType.BASE)
    base = base_rule.value if base_rule else ZERO
    weekend = rules.first(RuleType.WEEKEND)

    rates = []
    for night in stay.iter_nights():
        seasonal = pick_seasonal_rule(rules, night)
        rate = seasonal.value if seasonal else base
        if weekend and night.weekday() in WEEKEND_NIGHTS:
            rate = rate + weekend.amount_of(rate)
        rates.append(money(rate))
    return rates


def _long_stay_discount(rules: RuleSet, nights: int, subtotal: Decimal) -> Decimal:
    rule = rules.first(RuleType.DISCOUNT_LONG_STAY)
    if rule is None:
        return ZERO

    threshold = rule.min_nights
    if threshold is None:
        min_nights_rule = rules.first(RuleType.MIN_NIGHTS)
        if min_nights_rule is not None:
            threshold = int(min_nights_rule.value)

    if threshold is not None and nights < threshold:
        return ZERO
    return money(rule.amount_of(subtotal))


def evaluate_quote(
    rules: RuleSet,
    stay: DateRange,
    coupon: Optional[CouponSpec] = None,
    coupon_code: Optional[str] = None,
    today: Optional[date] = None,
    currency: str = DEFAULT_CURRENCY,
) -> Quote:
    """
    Price a stay. Pure function of its inputs.

    Args:
        rules: Active pricing rules
        stay: Half-open stay range
        coupon: The coupon looked up for ``coupon_code``, None if unknown
        coupon_code: Code the guest entered, if any
        today: Date the coupon's validity window is checked against
        currency: Currency code reported on the quote

    Returns:
        Quote: Totals plus an itemized breakdown
    """
    today = today or utc_today()
    nights = stay.nights

    rates = _nightly_rates(rules, stay)
    subtotal = money(sum(rates, ZERO))
    nightly_rate = money(subtotal / nights)
    breakdown = [QuoteLine(f"${nightly_rate} x {nights} nights", subtotal)]

    discount = _long_stay_discount(rules, nights, subtotal)

    cleaning_rule = rules.first(RuleType.CLEANING_FEE)
    cleaning_fee = money(cleaning_rule.value) if cleaning_rule else ZERO
    if cleaning_fee:
        breakdown.append(QuoteLine("Cleaning fee", cleaning_fee))

    service_rule = rules.first(RuleType.SERVICE_FEE)
    service_fee = money(service_rule.amount_of(subtotal)) if service_rule else ZERO
    if service_fee:
        breakdown.append(QuoteLine("Service fee", service_fee))

    if discount:
        breakdown.append(QuoteLine("Long stay discount", -discount))

    taxable = subtotal + cleaning_fee + service_fee - discount
    taxes = ZERO
    for rule_type, label in TAX_RULES:
        tax_rule = rules.first(rule_type)
        if tax_rule is None:
            continue
        tax = money(taxable * tax_rule.rate)
        taxes += tax
        breakdown.append(QuoteLine(label, tax))

    applied_coupon = None
    coupon_error = None
    if coupon_code:
        if coupon is None:
            coupon_error = "Invalid coupon code"
        else:
            coupon_error = coupon.rejection_reason(nights, today)

        if coupon_error is not None:
            logger.info("coupon_rejected", code=coupon_code, reason=coupon_error)
        elif coupon is not None:
            if coupon.type == CouponType.PERCENT:
                coupon_discount = money(subtotal * coupon.value / HUNDRED)
            else:
                coupon_discount = money(coupon.value)
            discount += coupon_discount
            applied_coupon = {
                "code": coupon.code,
                "type": coupon.type.value,
                "value": coupon.value,
            }
            breakdown.append(QuoteLine(f"Coupon ({coupon.code})", -coupon_discount))

    total = subtotal + cleaning_fee + service_fee + taxes - discount
    if total < ZERO:
        total = ZERO

    return Quote(
        nights=nights,
        nightly_rate=nightly_rate,
        subtotal=subtotal,
        cleaning_fee=cleaning_fee,
        service_fee=service_fee,
        taxes=money(taxes),
        discount=money(discount),
        total=money(total),
        currency=currency,
        breakdown=breakdown,
        coupon=applied_coupon,
        coupon_error=coupon_error,
    )


class PricingEvaluator:
    """
    Quote a stay for a property, re-validating availability first.

    Args:
        engine: SQLAlchemy engine
        resolver: Availability resolver; built from the engine by default
    """

    def __init__(self, engine: Engine, resolver: Optional[AvailabilityResolver] = None):
        self.engine = engine
        self.resolver = resolver or AvailabilityResolver(engine)

    def quote(
        self,
        property_id: UUID,
        stay: DateRange,
        guests: int,
        coupon_code: Optional[str] = None,
        today: Optional[date] = None,
        ignore_hold_reference: Optional[str] = None,
    ) -> Quote:
        """
        Validate the request, check availability and price the stay.

        Raises:
            InvalidRequestError: Past check-in or guest count out of range
            NotFoundError: Unknown property
            DatesUnavailableError: The stay overlaps a blocking range
        """
        today = today or utc_today()
        if stay.start < today:
            raise InvalidRequestError("Check-in date cannot be in the past")

        with self.engine.connect() as conn:
            prop = get_property(conn, property_id)
            if prop is None:
                raise NotFoundError(f"Property {property_id} not found")
            if guests < 1 or guests > prop.max_guests:
                raise InvalidRequestError(f"Guests must be between 1 and {prop.max_guests}")

            rule_rows = get_active_rules(conn, property_id)
            coupon_row = get_coupon_by_code(conn, coupon_code) if coupon_code else None

        availability = self.resolver.is_available(
            property_id, stay, ignore_hold_reference=ignore_hold_reference
        )
        if not availability.available:
            quotes.labels(result="unavailable").inc()
            raise DatesUnavailableError(availability.blocking_ranges)

        specs = [spec for spec in map(PricingRuleSpec.from_row, rule_rows) if spec is not None]
        quote = evaluate_quote(
            RuleSet(specs),
            stay,
            coupon=CouponSpec.from_row(coupon_row) if coupon_row is not None else None,
            coupon_code=coupon_code,
            today=today,
        )
        quotes.labels(result="ok").inc()
        logger.info(
            "quote_computed",
            property_id=str(property_id),
            nights=quote.nights,
            total=str(quote.total),
        )
        return quote
