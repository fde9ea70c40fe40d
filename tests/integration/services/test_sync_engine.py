"""
Sync runs against a real database with the feed fetch patched out.
"""

from __future__ import annotations

import threading
import uuid
from datetime import date
from typing import Any, Optional
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Engine

from booking_engine.db.locks import KeyedLockRegistry
from booking_engine.db.writers.external_reservations import update_external_reservation
from booking_engine.errors import FeedFetchError, FeedTimeoutError, SyncInProgressError
from booking_engine.models.calendars import ExternalCalendar, ExternalReservation, SyncRun
from booking_engine.models.enums import ExternalStatus, SyncStatus
from booking_engine.network.feed_client import FeedResponse
from booking_engine.normalizers.ical import ExternalEvent
from booking_engine.pollers.calendars import PollResult
from booking_engine.services.sync import SyncEngine

POLL = "booking_engine.services.sync.poll_calendar"
UPDATE = "booking_engine.services.reservations.update_external_reservation"


def event(
    uid: str,
    start: date,
    end: date,
    status: ExternalStatus = ExternalStatus.RESERVED,
    title: Optional[str] = "Reserved",
) -> ExternalEvent:
    return ExternalEvent(
        external_uid=uid,
        start=start,
        end=end,
        status=status,
        is_blocking=status != ExternalStatus.CANCELLED,
        title=title,
    )


def polled(events: list[ExternalEvent], etag: Optional[str] = '"v2"') -> PollResult:
    response = FeedResponse(
        status_code=200,
        body=b"BEGIN:VCALENDAR",
        etag=etag,
        last_modified="Sat, 01 Jun 2030 10:00:00 GMT",
        response_time_ms=42,
    )
    return PollResult(response=response, events=events)


def not_modified() -> PollResult:
    response = FeedResponse(
        status_code=304, body=None, etag=None, last_modified=None, response_time_ms=5
    )
    return PollResult(response=response)


@pytest.fixture
def sync_engine(db_engine: Engine) -> SyncEngine:
    return SyncEngine(db_engine, locks=KeyedLockRegistry())


@pytest.fixture
def calendar_id(seed: Any, property_id: uuid.UUID) -> uuid.UUID:
    return seed.calendar(property_id, etag='"v1"')


def stored(db_engine: Engine, calendar_id: uuid.UUID) -> dict[str, Any]:
    with db_engine.connect() as conn:
        rows = conn.execute(
            select(ExternalReservation).where(ExternalReservation.calendar_id == calendar_id)
        )
        return {row.external_uid: row for row in rows}


def calendar_row(db_engine: Engine, calendar_id: uuid.UUID) -> Any:
    with db_engine.connect() as conn:
        return conn.execute(
            select(ExternalCalendar).where(ExternalCalendar.id == calendar_id)
        ).one()


def runs(db_engine: Engine, calendar_id: uuid.UUID) -> list[Any]:
    with db_engine.connect() as conn:
        return list(conn.execute(select(SyncRun).where(SyncRun.calendar_id == calendar_id)))


@pytest.mark.integration
def test_sync_inserts_updates_and_deletes_by_uid(
    db_engine: Engine, seed: Any, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    seed.external_reservation(calendar_id, "keep", date(2030, 7, 1), date(2030, 7, 4))
    seed.external_reservation(calendar_id, "move", date(2030, 7, 10), date(2030, 7, 12))
    seed.external_reservation(calendar_id, "gone", date(2030, 8, 1), date(2030, 8, 3))
    feed = [
        event("keep", date(2030, 7, 1), date(2030, 7, 4), title=None),
        event("move", date(2030, 7, 11), date(2030, 7, 14)),
        event("new", date(2030, 9, 1), date(2030, 9, 5)),
    ]

    with patch(POLL, return_value=polled(feed)):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert outcome.status == SyncStatus.SUCCESS
    assert (outcome.imported, outcome.updated, outcome.deleted) == (1, 1, 1)
    rows = stored(db_engine, calendar_id)
    assert sorted(rows) == ["keep", "move", "new"]
    assert rows["move"].start_date == date(2030, 7, 11)
    assert rows["move"].end_date == date(2030, 7, 14)

    calendar = calendar_row(db_engine, calendar_id)
    assert calendar.etag == '"v2"'
    assert calendar.last_sync_at is not None
    assert calendar.next_sync_at is not None
    [run] = runs(db_engine, calendar_id)
    assert run.status == "success"
    assert run.etag_used == '"v1"'
    assert run.reservations_imported == 1
    assert run.http_status == 200


@pytest.mark.integration
def test_second_identical_sync_changes_nothing(
    db_engine: Engine, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    feed = [event("a", date(2030, 7, 1), date(2030, 7, 4))]

    with patch(POLL, return_value=polled(feed)):
        sync_engine.sync_calendar(calendar_id)
        outcome = sync_engine.sync_calendar(calendar_id)

    assert (outcome.imported, outcome.updated, outcome.deleted) == (0, 0, 0)


@pytest.mark.integration
def test_not_modified_keeps_rows_and_validators(
    db_engine: Engine, seed: Any, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    seed.external_reservation(calendar_id, "a", date(2030, 7, 1), date(2030, 7, 4))

    with patch(POLL, return_value=not_modified()):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert outcome.status == SyncStatus.SUCCESS
    assert outcome.http_status == 304
    assert list(stored(db_engine, calendar_id)) == ["a"]
    assert calendar_row(db_engine, calendar_id).etag == '"v1"'


@pytest.mark.integration
def test_overlapping_events_in_one_feed_keep_the_first(
    db_engine: Engine, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    feed = [
        event("b", date(2030, 7, 3), date(2030, 7, 6)),
        event("a", date(2030, 7, 1), date(2030, 7, 4)),
        event("blocked-note", date(2030, 7, 2), date(2030, 7, 3), status=ExternalStatus.TENTATIVE),
    ]

    with patch(POLL, return_value=polled(feed)):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert outcome.skipped == 1
    assert sorted(stored(db_engine, calendar_id)) == ["a", "blocked-note"]


@pytest.mark.integration
def test_moving_into_an_occupied_slot_keeps_the_old_version(
    db_engine: Engine, seed: Any, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    seed.external_reservation(
        calendar_id, "a", date(2030, 7, 1), date(2030, 7, 4), title="Reserved"
    )
    seed.external_reservation(calendar_id, "b", date(2030, 7, 10), date(2030, 7, 12))
    feed = [
        event("a", date(2030, 7, 1), date(2030, 7, 4)),
        event("b", date(2030, 7, 2), date(2030, 7, 5)),
    ]

    with patch(POLL, return_value=polled(feed)):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert outcome.skipped == 1
    assert stored(db_engine, calendar_id)["b"].start_date == date(2030, 7, 10)


@pytest.mark.integration
def test_skipped_move_keeps_its_old_slot_against_new_events(
    db_engine: Engine, seed: Any, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    seed.external_reservation(calendar_id, "y", date(2030, 7, 1), date(2030, 7, 5))
    seed.external_reservation(calendar_id, "z", date(2030, 7, 6), date(2030, 7, 9))
    feed = [
        event("z", date(2030, 7, 6), date(2030, 7, 9), title=None),
        event("x", date(2030, 7, 3), date(2030, 7, 6)),
        event("y", date(2030, 7, 7), date(2030, 7, 9)),
    ]

    with patch(POLL, return_value=polled(feed)):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert (outcome.imported, outcome.updated, outcome.skipped) == (0, 0, 2)
    rows = stored(db_engine, calendar_id)
    assert sorted(rows) == ["y", "z"]
    assert (rows["y"].start_date, rows["y"].end_date) == (date(2030, 7, 1), date(2030, 7, 5))


@pytest.mark.integration
def test_chained_moves_apply_in_one_run_without_transient_overlap(
    db_engine: Engine, seed: Any, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    seed.external_reservation(calendar_id, "a", date(2030, 7, 1), date(2030, 7, 3))
    seed.external_reservation(calendar_id, "b", date(2030, 7, 3), date(2030, 7, 5))
    feed = [
        event("a", date(2030, 7, 3), date(2030, 7, 5)),
        event("b", date(2030, 7, 5), date(2030, 7, 7)),
    ]

    with (
        patch(POLL, return_value=polled(feed)),
        patch(UPDATE, wraps=update_external_reservation) as update,
    ):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert (outcome.updated, outcome.skipped) == (2, 0)
    # b leaves 07-03 before a moves in
    assert [c.args[2].external_uid for c in update.call_args_list] == ["b", "a"]
    rows = stored(db_engine, calendar_id)
    assert rows["a"].start_date == date(2030, 7, 3)
    assert rows["b"].start_date == date(2030, 7, 5)


@pytest.mark.integration
def test_cancelled_event_frees_its_slot_for_another(
    db_engine: Engine, seed: Any, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    seed.external_reservation(calendar_id, "old", date(2030, 7, 1), date(2030, 7, 5))
    feed = [
        event("new", date(2030, 7, 2), date(2030, 7, 4)),
        event("old", date(2030, 7, 1), date(2030, 7, 5), status=ExternalStatus.CANCELLED),
    ]

    with patch(POLL, return_value=polled(feed)):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert (outcome.imported, outcome.updated, outcome.skipped) == (1, 1, 0)
    rows = stored(db_engine, calendar_id)
    assert rows["old"].status == ExternalStatus.CANCELLED.value


@pytest.mark.integration
def test_dry_run_writes_nothing(
    db_engine: Engine, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    feed = [event("a", date(2030, 7, 1), date(2030, 7, 4))]

    with patch(POLL, return_value=polled(feed)):
        outcome = sync_engine.sync_calendar(calendar_id, dry_run=True)

    assert outcome.imported == 1
    assert outcome.run_id is None
    assert stored(db_engine, calendar_id) == {}
    assert runs(db_engine, calendar_id) == []
    calendar = calendar_row(db_engine, calendar_id)
    assert calendar.last_sync_at is None
    assert calendar.etag == '"v1"'


@pytest.mark.integration
def test_timeout_is_recorded_and_rows_are_kept(
    db_engine: Engine, seed: Any, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    seed.external_reservation(calendar_id, "a", date(2030, 7, 1), date(2030, 7, 4))

    with patch(POLL, side_effect=FeedTimeoutError("Feed download exceeded 30s")):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert outcome.status == SyncStatus.TIMEOUT
    assert list(stored(db_engine, calendar_id)) == ["a"]
    calendar = calendar_row(db_engine, calendar_id)
    assert calendar.sync_errors == 1
    assert "30s" in calendar.last_error
    assert calendar.next_sync_at is not None
    [run] = runs(db_engine, calendar_id)
    assert run.status == "timeout"
    assert run.completed_at is not None


@pytest.mark.integration
def test_success_resets_consecutive_errors(
    db_engine: Engine, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    with patch(POLL, side_effect=FeedFetchError("HTTP 503", status_code=503)):
        first = sync_engine.sync_calendar(calendar_id)
        sync_engine.sync_calendar(calendar_id)
    assert first.status == SyncStatus.ERROR
    assert first.http_status == 503
    assert calendar_row(db_engine, calendar_id).sync_errors == 2

    with patch(POLL, return_value=polled([])):
        sync_engine.sync_calendar(calendar_id)

    calendar = calendar_row(db_engine, calendar_id)
    assert calendar.sync_errors == 0
    assert calendar.last_error is None


@pytest.mark.integration
def test_unexpected_error_is_recorded_not_raised(
    db_engine: Engine, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    with patch(POLL, side_effect=RuntimeError("boom")):
        outcome = sync_engine.sync_calendar(calendar_id)

    assert outcome.status == SyncStatus.ERROR
    assert outcome.error_message == "boom"


@pytest.mark.integration
def test_concurrent_run_for_same_calendar_is_refused(
    sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    lock = sync_engine.locks.get(calendar_id)
    lock.acquire()
    try:
        assert sync_engine.is_running(calendar_id)
        with pytest.raises(SyncInProgressError):
            sync_engine.sync_calendar(calendar_id)
    finally:
        lock.release()
    assert not sync_engine.is_running(calendar_id)


@pytest.mark.integration
def test_sync_blocked_while_feed_is_in_flight(
    sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    started = threading.Event()
    finish = threading.Event()

    def slow_poll(calendar: Any) -> PollResult:
        started.set()
        finish.wait(timeout=5)
        return polled([])

    with patch(POLL, side_effect=slow_poll):
        worker = threading.Thread(target=sync_engine.sync_calendar, args=(calendar_id,))
        worker.start()
        started.wait(timeout=5)
        with pytest.raises(SyncInProgressError):
            sync_engine.sync_calendar(calendar_id)
        finish.set()
        worker.join()


@pytest.mark.integration
def test_sync_due_calendars_skips_disabled(
    seed: Any, property_id: uuid.UUID, sync_engine: SyncEngine, calendar_id: uuid.UUID
) -> None:
    seed.calendar(property_id, platform="vrbo", name="VRBO", sync_enabled=False)
    seed.calendar(property_id, platform="booking", name="Booking.com", active=False)

    with patch(POLL, return_value=polled([])) as poll:
        outcomes = sync_engine.sync_due_calendars()

    assert [o.calendar_id for o in outcomes] == [calendar_id]
    assert poll.call_count == 1
