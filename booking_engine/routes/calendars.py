from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.engine import Engine

from booking_engine.config import DRY_RUN
from booking_engine.db.readers.calendars import (
    count_external_reservations,
    get_external_reservations,
    list_sync_runs,
)
from booking_engine.dependencies import get_db_engine, get_reservation_store, get_sync_engine
from booking_engine.errors import BookingEngineError, SyncInProgressError
from booking_engine.routes._helpers import get_calendar_or_404, serialize_record
from booking_engine.services.calendar_health import health_score, summarize_calendar_health
from booking_engine.services.reservations import ReservationStore
from booking_engine.services.sync import SyncEngine

logger = structlog.get_logger(__name__)
router = APIRouter()


def run_manual_sync(sync_engine: SyncEngine, calendar_id: UUID, dry_run: bool) -> None:
    """Background task body; a run that started in the meantime wins."""
    try:
        sync_engine.sync_calendar(calendar_id, dry_run=dry_run)
    except SyncInProgressError:
        logger.info("manual_sync_skipped_in_flight", calendar_id=str(calendar_id))


@router.post("/calendars/{calendar_id}/sync", status_code=status.HTTP_202_ACCEPTED)
def trigger_sync(
    calendar_id: UUID,
    background_tasks: BackgroundTasks,
    dry_run: Optional[bool] = Query(None, description="Override DRY_RUN setting"),
    db_engine: Engine = Depends(get_db_engine),
    sync_engine: SyncEngine = Depends(get_sync_engine),
) -> dict[str, str]:
    """
    Manually trigger a sync of one external calendar.

    The run executes in the background. Inactive or sync-disabled calendars
    return 400; a calendar whose sync is already running returns 409.

    Returns:
        dict: Message confirming the sync was scheduled
    """
    try:
        with db_engine.connect() as conn:
            calendar = get_calendar_or_404(conn, calendar_id)

        if not calendar.active or not calendar.sync_enabled:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Calendar {calendar_id} is inactive or has sync disabled",
            )
        if sync_engine.is_running(calendar_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Sync already running for calendar {calendar_id}",
            )

        background_tasks.add_task(
            run_manual_sync,
            sync_engine,
            calendar_id,
            dry_run if dry_run is not None else DRY_RUN,
        )
        logger.info("manual_sync_triggered", calendar_id=str(calendar_id))

        return {"message": f"Sync scheduled for calendar {calendar_id}"}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("sync_trigger_failed", calendar_id=str(calendar_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/calendars/health")
def get_calendars_health(db_engine: Engine = Depends(get_db_engine)) -> dict[str, Any]:
    """
    Sync health of every calendar, active holds and an overall score.

    Returns:
        dict: calendars, active_holds, overall_health (0-100)
    """
    try:
        return summarize_calendar_health(db_engine)

    except Exception as e:
        logger.exception("calendar_health_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/calendars/{calendar_id}/status")
def get_calendar_status(
    calendar_id: UUID,
    db_engine: Engine = Depends(get_db_engine),
    sync_engine: SyncEngine = Depends(get_sync_engine),
) -> dict[str, Any]:
    """
    Sync status of one calendar.

    Returns:
        dict: last_sync_at, next_sync_at, sync_errors, last_error,
            reservations_count, health_score and whether a run is in flight
    """
    try:
        with db_engine.connect() as conn:
            calendar = get_calendar_or_404(conn, calendar_id)
            count = count_external_reservations(conn).get(calendar_id, 0)

        body = serialize_record(
            dict(calendar._mapping), exclude=("ical_url", "etag", "last_modified")
        )
        body["reservations_count"] = count
        body["health_score"] = health_score(calendar.sync_errors)
        body["sync_in_progress"] = sync_engine.is_running(calendar_id)
        return body

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("calendar_status_failed", calendar_id=str(calendar_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/calendars/{calendar_id}/sync-runs")
def get_sync_runs(
    calendar_id: UUID,
    limit: int = Query(20, ge=1, le=200),
    db_engine: Engine = Depends(get_db_engine),
) -> list[dict[str, Any]]:
    """Recent sync runs of a calendar, newest first."""
    try:
        with db_engine.connect() as conn:
            get_calendar_or_404(conn, calendar_id)
            runs = list_sync_runs(conn, calendar_id, limit=limit)

        return [serialize_record(dict(run._mapping)) for run in runs]

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("sync_runs_lookup_failed", calendar_id=str(calendar_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/calendars/{calendar_id}/reservations")
def get_calendar_reservations(
    calendar_id: UUID,
    db_engine: Engine = Depends(get_db_engine),
) -> list[dict[str, Any]]:
    """Reservations imported from a calendar, ordered by check-in."""
    try:
        with db_engine.connect() as conn:
            get_calendar_or_404(conn, calendar_id)
            rows = get_external_reservations(conn, calendar_id)

        return [serialize_record(dict(row._mapping), exclude=("raw_event",)) for row in rows]

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(
            "calendar_reservations_lookup_failed", calendar_id=str(calendar_id), error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/calendars/{calendar_id}/reservations/{reservation_id}")
def delete_calendar_reservation(
    calendar_id: UUID,
    reservation_id: UUID,
    store: ReservationStore = Depends(get_reservation_store),
) -> dict[str, str]:
    """
    Remove one imported reservation.

    The next sync re-imports it if the platform still lists the event.
    """
    try:
        if not store.delete_external_reservation(calendar_id, reservation_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Reservation {reservation_id} not found",
            )

        return {"message": f"Reservation {reservation_id} deleted"}

    except HTTPException:
        raise
    except BookingEngineError:
        raise
    except Exception as e:
        logger.exception(
            "external_reservation_delete_failed", reservation_id=str(reservation_id), error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")
