"""
Map domain exceptions to HTTP responses.

Validation problems are 400s, missing entities 404s, and anything that means
"the state changed under you" (dates taken, canceled booking, sync already
running) a 409.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from booking_engine.errors import (
    DatesUnavailableError,
    InvalidBookingTransitionError,
    InvalidRequestError,
    NotFoundError,
    SyncInProgressError,
)

logger = structlog.get_logger(__name__)


async def _invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
    logger.info("invalid_request", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def _dates_unavailable(request: Request, exc: DatesUnavailableError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": {
                "message": str(exc),
                "blockingRanges": [r.as_dict() for r in exc.blocking_ranges],
            }
        },
    )


async def _conflict(request: Request, exc: Exception) -> JSONResponse:
    logger.info("request_conflict", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvalidRequestError, _invalid_request)  # type: ignore[arg-type]
    app.add_exception_handler(NotFoundError, _not_found)  # type: ignore[arg-type]
    app.add_exception_handler(DatesUnavailableError, _dates_unavailable)  # type: ignore[arg-type]
    app.add_exception_handler(InvalidBookingTransitionError, _conflict)
    app.add_exception_handler(SyncInProgressError, _conflict)
