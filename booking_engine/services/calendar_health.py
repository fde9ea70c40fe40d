"""Health summary of external calendar sync for the admin dashboard."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.engine import Engine

from booking_engine.db.readers.calendars import (
    count_external_reservations,
    get_latest_sync_statuses,
    list_calendars,
)
from booking_engine.db.readers.holds import count_active_holds
from booking_engine.utils.datetime import ensure_utc, utc_now

# Each consecutive failed run costs this many points out of 100
ERROR_PENALTY = 10


def health_score(sync_errors: int) -> int:
    return max(0, 100 - ERROR_PENALTY * (sync_errors or 0))


def _iso(value: Any) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def summarize_calendar_health(engine: Engine) -> dict[str, Any]:
    """
    Per-calendar sync health plus an overall score.

    A calendar that keeps failing keeps serving its last imported rows, so
    the score is the signal that its data may be stale.

    Returns:
        dict: calendars (list), active_holds, overall_health
    """
    now = utc_now()
    with engine.connect() as conn:
        calendars = list_calendars(conn)
        counts = count_external_reservations(conn)
        latest = get_latest_sync_statuses(conn)
        active_holds = count_active_holds(conn, now)

    rows = []
    for calendar in calendars:
        rows.append(
            {
                "id": str(calendar.id),
                "name": calendar.name,
                "platform": calendar.platform,
                "active": calendar.active,
                "sync_enabled": calendar.sync_enabled,
                "last_sync_at": _iso(calendar.last_sync_at),
                "next_sync_at": _iso(calendar.next_sync_at),
                "sync_errors": calendar.sync_errors,
                "last_error": calendar.last_error,
                "latest_sync_status": latest.get(calendar.id),
                "reservations_count": counts.get(calendar.id, 0),
                "health_score": health_score(calendar.sync_errors),
            }
        )

    active_rows = [row for row in rows if row["active"]]
    overall = (
        round(sum(row["health_score"] for row in active_rows) / len(active_rows))
        if active_rows
        else 100
    )
    return {"calendars": rows, "active_holds": active_holds, "overall_health": overall}
