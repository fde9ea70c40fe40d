"""
Background scheduling for calendar sync and hold expiry.

An APScheduler BackgroundScheduler runs two interval jobs:

- calendar sync tick: find calendars whose next_sync_at is due and dispatch
  each to a bounded worker pool, skipping calendars still in flight. A slow
  feed only occupies one worker; the others keep syncing.
- hold sweep: delete expired checkout holds.

Usage:
    supervisor = SyncSupervisor(engine)
    supervisor.start()
    ...
    supervisor.shutdown()
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional
from uuid import UUID

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.engine import Engine

from booking_engine.config import (
    DRY_RUN,
    HOLD_SWEEP_INTERVAL_SECONDS,
    SYNC_MAX_CONCURRENCY,
    SYNC_TICK_SECONDS,
)
from booking_engine.db.readers.calendars import get_due_calendar_ids
from booking_engine.errors import SyncInProgressError
from booking_engine.services.holds import HoldManager
from booking_engine.services.sync import SyncEngine
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

SYNC_TICK_JOB_ID = "calendar_sync_tick"
HOLD_SWEEP_JOB_ID = "hold_sweep"


class SyncSupervisor:
    def __init__(
        self,
        engine: Engine,
        sync_engine: Optional[SyncEngine] = None,
        hold_manager: Optional[HoldManager] = None,
        max_workers: int = SYNC_MAX_CONCURRENCY,
        tick_seconds: int = SYNC_TICK_SECONDS,
        sweep_seconds: int = HOLD_SWEEP_INTERVAL_SECONDS,
        dry_run: bool = DRY_RUN,
    ):
        self.engine = engine
        self.sync_engine = sync_engine or SyncEngine(engine)
        self.hold_manager = hold_manager or HoldManager(engine)
        self.max_workers = max_workers
        self.tick_seconds = tick_seconds
        self.sweep_seconds = sweep_seconds
        self.dry_run = dry_run

        self._scheduler: Optional[BackgroundScheduler] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._in_flight: set[UUID] = set()
        self._lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="calendar_sync",
            )
        return self._executor

    def start(self) -> None:
        """Start both interval jobs. The first sync tick fires immediately."""
        if self._scheduler is not None and self._scheduler.running:
            return

        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self.tick_seconds),
            id=SYNC_TICK_JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=utc_now(),
        )
        self._scheduler.add_job(
            self.sweep_holds,
            IntervalTrigger(seconds=self.sweep_seconds),
            id=HOLD_SWEEP_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            "scheduler_started",
            tick_seconds=self.tick_seconds,
            sweep_seconds=self.sweep_seconds,
            max_workers=self.max_workers,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop scheduling; optionally wait for in-flight sync runs to finish."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        logger.info("scheduler_stopped")

    @property
    def in_flight(self) -> set[UUID]:
        with self._lock:
            return set(self._in_flight)

    def tick(self) -> int:
        """
        Dispatch every due calendar that is not already syncing.

        Returns:
            int: Number of calendars dispatched
        """
        try:
            with self.engine.connect() as conn:
                due = get_due_calendar_ids(conn, utc_now())
        except Exception as e:
            logger.exception("sync_tick_failed", error=str(e))
            return 0

        dispatched = 0
        for calendar_id in due:
            with self._lock:
                if calendar_id in self._in_flight:
                    continue
                self._in_flight.add(calendar_id)
            self._get_executor().submit(self._run_one, calendar_id)
            dispatched += 1

        if dispatched:
            logger.info("sync_dispatched", due=len(due), dispatched=dispatched)
        return dispatched

    def _run_one(self, calendar_id: UUID) -> None:
        try:
            self.sync_engine.sync_calendar(calendar_id, dry_run=self.dry_run)
        except SyncInProgressError:
            # Manual trigger got there first
            logger.info("sync_skipped_in_flight", calendar_id=str(calendar_id))
        except Exception as e:
            logger.exception("calendar_sync_failed", calendar_id=str(calendar_id), error=str(e))
        finally:
            with self._lock:
                self._in_flight.discard(calendar_id)

    def sweep_holds(self) -> int:
        try:
            return self.hold_manager.sweep_expired()
        except Exception as e:
            logger.exception("hold_sweep_failed", error=str(e))
            return 0
