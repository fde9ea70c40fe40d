"""
One-shot sync of every due external calendar.

Usage:
    python -m booking_engine.pollers.sync
"""

import structlog

from booking_engine.config import DRY_RUN
from booking_engine.db.engine import engine
from booking_engine.logging_config import setup_logging
from booking_engine.services.sync import SyncEngine

# Setup logging
setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    # Sync every active calendar whose next_sync_at has passed
    outcomes = SyncEngine(engine).sync_due_calendars(dry_run=DRY_RUN)
    logger.info("sync_pass_finished", calendars=len(outcomes), dry_run=DRY_RUN)


if __name__ == "__main__":
    main()
