from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Row

from booking_engine.models.pricing import Coupon, PricingRule


def get_active_rules(conn: Connection, property_id: UUID) -> list[Row[Any]]:
    """
    Fetch all active pricing rules for a property.

    Ordered newest first (created_at, then id) so that whenever several rules
    of one type apply, the first match is the one that wins.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        property_id (UUID): Property ID.

    Returns:
        list[Row]: Active pricing rule rows
    """
    result = conn.execute(
        select(PricingRule)
        .where(PricingRule.property_id == property_id, PricingRule.active.is_(True))
        .order_by(PricingRule.created_at.desc(), PricingRule.id.desc())
    )
    return list(result.fetchall())


def get_coupon_by_code(conn: Connection, code: str) -> Optional[Row[Any]]:
    """Look up a coupon by code, case-insensitively."""
    return conn.execute(
        select(Coupon).where(func.upper(Coupon.code) == code.strip().upper())
    ).fetchone()
