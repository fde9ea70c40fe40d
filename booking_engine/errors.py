"""
Exception hierarchy for the booking engine.

Routes translate these into HTTP responses; the sync engine catches the feed
errors per calendar and records them on the sync run instead of propagating.
Reservation conflicts are not exceptions: the reservation store returns them
as values so callers must handle them explicitly.
"""

from __future__ import annotations

from typing import Any, Optional


class BookingEngineError(Exception):
    """Base class for all booking engine errors."""


class InvalidRequestError(BookingEngineError):
    """Input failed validation (date order, guest count, past dates, missing fields)."""


class NotFoundError(BookingEngineError):
    """A referenced property, booking, hold or calendar does not exist."""


class DatesUnavailableError(BookingEngineError):
    """The requested stay overlaps at least one blocking range."""

    def __init__(self, blocking_ranges: list[Any]):
        super().__init__("Selected dates are not available")
        self.blocking_ranges = blocking_ranges


class InvalidBookingTransitionError(BookingEngineError):
    """Requested status change is not allowed from the booking's current status."""


class SyncInProgressError(BookingEngineError):
    """A sync run for the calendar is already executing."""


class FeedError(BookingEngineError):
    """Base class for external calendar feed failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedFetchError(FeedError):
    """The feed could not be downloaded (network error, HTTP error, oversize body)."""


class FeedTimeoutError(FeedError):
    """The feed download exceeded its deadline."""


class FeedParseError(FeedError):
    """The feed body is not a parseable iCalendar document."""
