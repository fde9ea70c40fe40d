# models/pricing.py

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.sql import func

from booking_engine.models.base import Base


class PricingRule(Base):
    """
    ORM model for one admin-managed pricing rule.

    rule_type is one of models.enums.RuleType. start_date/end_date only apply
    to seasonal rules and are inclusive on both ends. percentage switches
    weekend, long-stay discount, service fee and tax rules between a flat
    amount and a percentage. Rules are disabled with active=false, never deleted.
    """

    __tablename__ = "pricing_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id = Column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rule_type = Column(String(32), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    value = Column(Numeric(10, 4), nullable=True)
    min_nights = Column(Integer, nullable=True)
    percentage = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Coupon(Base):
    """
    ORM model for discount coupons.

    used_count is incremented when a booking that used the coupon is
    confirmed; quoting never touches it.
    """

    __tablename__ = "coupons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(64), nullable=False, unique=True)
    type = Column(String(16), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    min_nights = Column(Integer, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class BlackoutDate(Base):
    """Owner-declared unavailable range, half-open like every other stay range."""

    __tablename__ = "blackout_dates"
    __table_args__ = (CheckConstraint("start_date < end_date", name="range"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id = Column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
