from dataclasses import dataclass, field
from typing import Any

import structlog

from booking_engine.config import DEBUG
from booking_engine.network.feed_client import FeedResponse, fetch_feed
from booking_engine.normalizers.ical import ExternalEvent, normalize_feed

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PollResult:
    response: FeedResponse
    events: list[ExternalEvent] = field(default_factory=list)


def poll_calendar(calendar: Any) -> PollResult:
    """
    Fetch and normalize one external calendar feed.

    Args:
        calendar: ExternalCalendar row (needs id, ical_url, etag, last_modified)

    Returns:
        PollResult: The raw response and, unless it was a 304, the parsed events
    """
    response = fetch_feed(
        calendar.ical_url,
        etag=calendar.etag,
        last_modified=calendar.last_modified,
    )
    if response.not_modified:
        return PollResult(response=response)

    events = normalize_feed(response.body or b"")

    if DEBUG and events:
        logger.debug("sample_external_event", calendar_id=str(calendar.id), event=events[0])

    logger.info(
        "calendar_polled",
        calendar_id=str(calendar.id),
        events=len(events),
        response_time_ms=response.response_time_ms,
    )
    return PollResult(response=response, events=events)
