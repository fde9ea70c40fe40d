import uuid
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from booking_engine.models.calendars import ExternalCalendar, SyncRun
from booking_engine.models.enums import SyncStatus

# Longest error text stored on the calendar and run rows
MAX_ERROR_LENGTH = 2000


def insert_sync_run(
    conn: Connection,
    calendar_id: UUID,
    started_at: datetime,
    etag_used: Optional[str] = None,
    last_modified_used: Optional[str] = None,
) -> UUID:
    """
    Record the start of a sync run.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        calendar_id (UUID): Calendar being synced.
        started_at (datetime): Run start time.
        etag_used (Optional[str]): ETag sent as If-None-Match.
        last_modified_used (Optional[str]): Value sent as If-Modified-Since.

    Returns:
        UUID: ID of the new sync run
    """
    run_id = uuid.uuid4()
    conn.execute(
        insert(SyncRun).values(
            id=run_id,
            calendar_id=calendar_id,
            started_at=started_at,
            status=SyncStatus.RUNNING.value,
            etag_used=etag_used,
            last_modified_used=last_modified_used,
        )
    )
    return run_id


def finish_sync_run(
    conn: Connection,
    run_id: UUID,
    status: SyncStatus,
    completed_at: datetime,
    imported: int = 0,
    updated: int = 0,
    deleted: int = 0,
    http_status: Optional[int] = None,
    response_time_ms: Optional[int] = None,
    error_message: Optional[str] = None,
) -> None:
    """Move a sync run from running to its terminal status."""
    conn.execute(
        update(SyncRun)
        .where(SyncRun.id == run_id)
        .values(
            status=status.value,
            completed_at=completed_at,
            reservations_imported=imported,
            reservations_updated=updated,
            reservations_deleted=deleted,
            http_status=http_status,
            response_time_ms=response_time_ms,
            error_message=error_message[:MAX_ERROR_LENGTH] if error_message else None,
        )
    )


def record_sync_success(
    conn: Connection,
    calendar_id: UUID,
    now: datetime,
    next_sync_at: datetime,
    etag: Optional[str],
    last_modified: Optional[str],
) -> None:
    """
    Store the new validators and schedule the next run.

    A 304 response carries no new validators; callers pass the stored ones
    through so they are kept.
    """
    conn.execute(
        update(ExternalCalendar)
        .where(ExternalCalendar.id == calendar_id)
        .values(
            etag=etag,
            last_modified=last_modified,
            last_sync_at=now,
            next_sync_at=next_sync_at,
            sync_errors=0,
            last_error=None,
            updated_at=now,
        )
    )


def record_sync_failure(
    conn: Connection,
    calendar_id: UUID,
    now: datetime,
    next_sync_at: datetime,
    error: str,
) -> None:
    """Count a failed run and schedule the next one at the regular interval."""
    conn.execute(
        update(ExternalCalendar)
        .where(ExternalCalendar.id == calendar_id)
        .values(
            sync_errors=ExternalCalendar.sync_errors + 1,
            last_error=error[:MAX_ERROR_LENGTH],
            next_sync_at=next_sync_at,
            updated_at=now,
        )
    )
