# models/calendars.py

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.sql import func

from booking_engine.config import DEFAULT_SYNC_FREQUENCY
from booking_engine.models.base import Base


class ExternalCalendar(Base):
    """
    ORM model for an external platform iCal feed (Airbnb, VRBO, ...).

    etag/last_modified hold the validators from the last 200 response and are
    sent back as conditional request headers. sync_errors counts consecutive
    failed runs and resets on the next success.
    """

    __tablename__ = "external_calendars"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id = Column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform = Column(String(16), nullable=False)
    name = Column(String(200), nullable=False)
    ical_url = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    sync_enabled = Column(Boolean, nullable=False, default=True)
    sync_frequency = Column(Integer, nullable=False, default=DEFAULT_SYNC_FREQUENCY)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    next_sync_at = Column(DateTime(timezone=True), nullable=True, index=True)
    etag = Column(String(255), nullable=True)
    last_modified = Column(String(255), nullable=True)
    sync_errors = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ExternalReservation(Base):
    """
    ORM model for one VEVENT imported from an external calendar.

    Keyed by the remote UID within its calendar. raw_event keeps the event
    properties as received for debugging platform quirks.
    """

    __tablename__ = "external_reservations"
    __table_args__ = (
        UniqueConstraint("calendar_id", "external_uid", name="uq_external_reservations_uid"),
        CheckConstraint("start_date < end_date", name="range"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    calendar_id = Column(
        Uuid, ForeignKey("external_calendars.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_uid = Column(String(512), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default="reserved")
    is_blocking = Column(Boolean, nullable=False, default=True)
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    raw_event = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class SyncRun(Base):
    """Append-only audit row for one execution of the calendar sync."""

    __tablename__ = "sync_runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    calendar_id = Column(
        Uuid, ForeignKey("external_calendars.id", ondelete="CASCADE"), nullable=False, index=True
    )
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(16), nullable=False, default="running")
    reservations_imported = Column(Integer, nullable=False, default=0)
    reservations_updated = Column(Integer, nullable=False, default=0)
    reservations_deleted = Column(Integer, nullable=False, default=0)
    http_status = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    etag_used = Column(String(255), nullable=True)
    last_modified_used = Column(String(255), nullable=True)
