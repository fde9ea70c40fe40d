from __future__ import annotations

import logging
import sys
from typing import Any, Callable, MutableMapping, Optional, cast

import structlog

from booking_engine.config import LOG_LEVEL

Processor = Callable[[Any, str, MutableMapping[str, Any]], Any]

# Libraries that log every request/poll at INFO
NOISY_LOGGERS = (
    "urllib3",
    "requests",
    "apscheduler",
    "sqlalchemy.engine",
    "uvicorn.access",
)


def _renderer(level: str) -> Processor:
    if level == "DEBUG":
        return cast(Processor, structlog.dev.ConsoleRenderer(colors=True))
    return cast(Processor, structlog.processors.JSONRenderer())


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure stdlib logging and structlog for the whole process.

    DEBUG renders human-readable console lines; every other level renders JSON
    so sync runs and booking events can be shipped to a log aggregator.
    Context bound with structlog.contextvars (request_id, calendar_id) is
    merged into every event.
    """
    level = (level or LOG_LEVEL).upper()

    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s:%(lineno)d: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=level,
    )
    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _renderer(level),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
