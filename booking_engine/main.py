# booking_engine/main.py

from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_engine.config import ALLOWED_ORIGINS, SCHEDULER_ENABLED
from booking_engine.logging_config import setup_logging
from booking_engine.middleware import RequestIDMiddleware
from booking_engine.routes._errors import register_error_handlers
from booking_engine.routes.availability import router as availability_router
from booking_engine.routes.bookings import router as bookings_router
from booking_engine.routes.calendars import router as calendars_router
from booking_engine.routes.health import router as health_router
from booking_engine.routes.holds import router as holds_router
from booking_engine.routes.ical_export import router as ical_router
from booking_engine.routes.metrics import router as metrics_router
from booking_engine.routes.quotes import router as quotes_router
from booking_engine.services.scheduler import SyncSupervisor

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"

app = FastAPI(
    title="Booking Engine API",
    description="Availability, pricing, bookings and external calendar sync for a rental",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

register_error_handlers(app)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(quotes_router, prefix=API_PREFIX, tags=["Quotes"])
app.include_router(availability_router, prefix=API_PREFIX, tags=["Availability"])
app.include_router(bookings_router, prefix=API_PREFIX, tags=["Bookings"])
app.include_router(holds_router, prefix=API_PREFIX, tags=["Holds"])
app.include_router(calendars_router, prefix=API_PREFIX, tags=["Calendars"])
app.include_router(ical_router, prefix=API_PREFIX, tags=["iCal"])

supervisor: Optional[SyncSupervisor] = None


@app.on_event("startup")
def startup_event() -> None:
    """Start the calendar sync and hold sweep scheduler."""
    global supervisor
    from booking_engine.db.engine import engine

    logger.info("FastAPI application starting up...")

    if SCHEDULER_ENABLED:
        supervisor = SyncSupervisor(engine)
        supervisor.start()
    else:
        logger.info("scheduler_disabled")

    logger.info("FastAPI application initialized")


@app.on_event("shutdown")
def shutdown_event() -> None:
    """Stop the scheduler, let running syncs finish, and release DB connections."""
    global supervisor
    from booking_engine.db.engine import engine

    if supervisor is not None:
        supervisor.shutdown(wait=True)
        supervisor = None

    engine.dispose()
    logger.info("FastAPI application stopped")
