"""SQLAlchemy model for temporary checkout holds."""

import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, String, Uuid
from sqlalchemy.sql import func

from booking_engine.models.base import Base


class Hold(Base):
    """
    ORM model for a time-bounded claim on a date range.

    A hold blocks availability only while expires_at is in the future; the
    sweeper deletes expired rows. reference_id links a checkout hold to the
    idempotency key of the booking that will consume it.
    """

    __tablename__ = "holds"
    __table_args__ = (CheckConstraint("start_date < end_date", name="range"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id = Column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(String(32), nullable=False, default="checkout")
    reference_id = Column(String(255), nullable=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
