"""SQLAlchemy model for the rental property."""

import uuid

from sqlalchemy import Column, DateTime, Integer, String, Uuid
from sqlalchemy.sql import func

from booking_engine.models.base import Base


class Property(Base):
    """
    ORM model for the rental property.

    The site sells a single property, but every other table is keyed by
    property_id so the reservation lock and availability queries stay scoped.
    """

    __tablename__ = "properties"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    max_guests = Column(Integer, nullable=False, default=8)
    check_in_time = Column(String(5), nullable=False, default="15:00")
    check_out_time = Column(String(5), nullable=False, default="11:00")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
