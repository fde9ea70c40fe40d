"""Calendar-level sync orchestrator for external iCal feeds."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine

from booking_engine.db.locks import KeyedLockRegistry, calendar_locks
from booking_engine.db.readers.calendars import get_calendar, get_due_calendar_ids
from booking_engine.db.writers.calendars import (
    finish_sync_run,
    insert_sync_run,
    record_sync_failure,
    record_sync_success,
)
from booking_engine.errors import FeedError, FeedTimeoutError, NotFoundError, SyncInProgressError
from booking_engine.metrics import reservations_synced, sync_duration, sync_runs
from booking_engine.models.enums import SyncStatus
from booking_engine.pollers.calendars import poll_calendar
from booking_engine.services.reservations import ReservationStore, SyncDelta
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SyncOutcome:
    calendar_id: UUID
    status: SyncStatus
    run_id: Optional[UUID] = None
    imported: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    http_status: Optional[int] = None
    response_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    # Validators to store after a successful run
    etag: Optional[str] = None
    last_modified: Optional[str] = None


class SyncEngine:
    """
    Run sync for external calendars, one run per calendar at a time.

    A run fetches the feed conditionally, diffs it against the stored rows
    through the reservation store and records a SyncRun. Failures are recorded
    on the run and the calendar and never raised to the caller, so a broken
    feed cannot stop other calendars from syncing.

    Args:
        engine: SQLAlchemy engine
        store: Reservation store used for the locked diff-apply
        locks: Per-calendar lock registry; the process-wide registry by default
    """

    def __init__(
        self,
        engine: Engine,
        store: Optional[ReservationStore] = None,
        locks: KeyedLockRegistry = calendar_locks,
    ):
        self.engine = engine
        self.store = store or ReservationStore(engine)
        self.locks = locks

    def is_running(self, calendar_id: UUID) -> bool:
        return self.locks.is_locked(calendar_id)

    def sync_calendar(self, calendar_id: UUID, dry_run: bool = False) -> SyncOutcome:
        """
        Sync a single calendar.

        Args:
            calendar_id: External calendar ID
            dry_run: If True, fetch and diff but write nothing

        Returns:
            SyncOutcome: Final status and counts of the run

        Raises:
            SyncInProgressError: A run for this calendar is already executing
            NotFoundError: Unknown calendar
        """
        lock = self.locks.get(calendar_id)
        if not lock.acquire(blocking=False):
            raise SyncInProgressError(f"Sync already running for calendar {calendar_id}")

        try:
            structlog.contextvars.bind_contextvars(calendar_id=str(calendar_id))
            return self._run(calendar_id, dry_run)
        finally:
            structlog.contextvars.unbind_contextvars("calendar_id")
            lock.release()

    def _run(self, calendar_id: UUID, dry_run: bool) -> SyncOutcome:
        with self.engine.connect() as conn:
            calendar = get_calendar(conn, calendar_id)
        if calendar is None:
            raise NotFoundError(f"Calendar {calendar_id} not found")

        started_at = utc_now()
        logger.info("sync_started", platform=calendar.platform, dry_run=dry_run)

        run_id = None
        if not dry_run:
            with self.engine.begin() as conn:
                run_id = insert_sync_run(
                    conn, calendar_id, started_at, calendar.etag, calendar.last_modified
                )

        with sync_duration.labels(platform=calendar.platform).time():
            outcome = self._fetch_and_apply(calendar, run_id, dry_run)

        sync_runs.labels(platform=calendar.platform, status=outcome.status.value).inc()
        if not dry_run:
            self._record(calendar, outcome)

        return outcome

    def _fetch_and_apply(
        self, calendar: Any, run_id: Optional[UUID], dry_run: bool
    ) -> SyncOutcome:
        http_status = None
        response_time_ms = None
        try:
            result = poll_calendar(calendar)
            http_status = result.response.status_code
            response_time_ms = result.response.response_time_ms

            if result.response.not_modified:
                delta = SyncDelta()
                etag, last_modified = calendar.etag, calendar.last_modified
            else:
                delta = self.store.apply_external_changes(calendar, result.events, dry_run=dry_run)
                etag = result.response.etag
                last_modified = result.response.last_modified

        except FeedTimeoutError as e:
            logger.warning("sync_timed_out", error=str(e))
            return SyncOutcome(
                calendar_id=calendar.id,
                status=SyncStatus.TIMEOUT,
                run_id=run_id,
                http_status=e.status_code,
                error_message=str(e),
            )
        except FeedError as e:
            logger.warning("sync_feed_failed", error=str(e), http_status=e.status_code)
            return SyncOutcome(
                calendar_id=calendar.id,
                status=SyncStatus.ERROR,
                run_id=run_id,
                http_status=e.status_code,
                error_message=str(e),
            )
        except Exception as e:
            logger.exception("sync_failed", error=str(e))
            return SyncOutcome(
                calendar_id=calendar.id,
                status=SyncStatus.ERROR,
                run_id=run_id,
                http_status=http_status,
                response_time_ms=response_time_ms,
                error_message=str(e) or e.__class__.__name__,
            )

        for change in ("imported", "updated", "deleted", "skipped"):
            count = getattr(delta, change)
            if count:
                reservations_synced.labels(platform=calendar.platform, change=change).inc(count)

        logger.info(
            "sync_completed",
            http_status=http_status,
            imported=delta.imported,
            updated=delta.updated,
            deleted=delta.deleted,
            skipped=delta.skipped,
        )
        return SyncOutcome(
            calendar_id=calendar.id,
            status=SyncStatus.SUCCESS,
            run_id=run_id,
            imported=delta.imported,
            updated=delta.updated,
            deleted=delta.deleted,
            skipped=delta.skipped,
            http_status=http_status,
            response_time_ms=response_time_ms,
            etag=etag,
            last_modified=last_modified,
        )

    def _record(self, calendar: Any, outcome: SyncOutcome) -> None:
        now = utc_now()
        next_sync_at = now + timedelta(seconds=calendar.sync_frequency)

        with self.engine.begin() as conn:
            if outcome.run_id is not None:
                finish_sync_run(
                    conn,
                    outcome.run_id,
                    outcome.status,
                    completed_at=now,
                    imported=outcome.imported,
                    updated=outcome.updated,
                    deleted=outcome.deleted,
                    http_status=outcome.http_status,
                    response_time_ms=outcome.response_time_ms,
                    error_message=outcome.error_message,
                )
            if outcome.status == SyncStatus.SUCCESS:
                record_sync_success(
                    conn,
                    calendar.id,
                    now,
                    next_sync_at,
                    etag=outcome.etag,
                    last_modified=outcome.last_modified,
                )
            else:
                record_sync_failure(
                    conn, calendar.id, now, next_sync_at, outcome.error_message or "unknown error"
                )

    def sync_due_calendars(self, dry_run: bool = False) -> list[SyncOutcome]:
        """
        Sync every calendar that is due, one after another.

        Used by the one-shot CLI; the scheduler dispatches calendars to a
        worker pool instead.
        """
        with self.engine.connect() as conn:
            calendar_ids = get_due_calendar_ids(conn, utc_now())

        logger.info("due_calendars_found", count=len(calendar_ids))

        outcomes = []
        for calendar_id in calendar_ids:
            try:
                outcomes.append(self.sync_calendar(calendar_id, dry_run=dry_run))
            except SyncInProgressError:
                logger.info("sync_skipped_in_flight", calendar_id=str(calendar_id))
            except Exception as e:
                logger.exception("calendar_sync_failed", calendar_id=str(calendar_id), error=str(e))

        logger.info("sync_due_calendars_completed", total_calendars=len(calendar_ids))
        return outcomes
