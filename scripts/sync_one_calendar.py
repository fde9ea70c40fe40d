import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
from uuid import UUID

import structlog

from booking_engine.db.engine import engine
from booking_engine.logging_config import setup_logging
from booking_engine.services.sync import SyncEngine

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Sync one external calendar immediately, whether or not it is due.
    """
    parser = argparse.ArgumentParser(description="Sync a single external calendar.")
    parser.add_argument("calendar_id", type=UUID, help="External calendar ID")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and diff, write nothing")
    args = parser.parse_args()

    outcome = SyncEngine(engine).sync_calendar(args.calendar_id, dry_run=args.dry_run)
    logger.info(
        "manual_sync_finished",
        calendar_id=str(args.calendar_id),
        status=outcome.status.value,
        imported=outcome.imported,
        updated=outcome.updated,
        deleted=outcome.deleted,
        skipped=outcome.skipped,
        error=outcome.error_message,
    )


if __name__ == "__main__":
    main()
