"""
Normalize iCalendar feeds from booking platforms into ExternalEvent records.

Airbnb and VRBO export all-day VEVENTs; some channel managers export
date-times instead. Both become half-open [start, end) date ranges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional, Union

import structlog
from icalendar import Calendar

from booking_engine.errors import FeedParseError
from booking_engine.models.enums import SLOT_HOLDING_STATUSES, ExternalStatus

logger = structlog.get_logger(__name__)

STATUS_MAP = {
    "CONFIRMED": ExternalStatus.RESERVED,
    "TENTATIVE": ExternalStatus.TENTATIVE,
    "CANCELLED": ExternalStatus.CANCELLED,
}

# Summaries platforms use for owner blocks rather than guest stays
BLOCKED_SUMMARY_MARKERS = ("not available", "blocked", "unavailable", "closed")


@dataclass(frozen=True)
class ExternalEvent:
    external_uid: str
    start: date
    end: date
    status: ExternalStatus
    is_blocking: bool
    title: Optional[str] = None
    description: Optional[str] = None
    raw_event: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def holds_slot(self) -> bool:
        """True when this event must not overlap another slot-holding event of its calendar."""
        return self.is_blocking and self.status.value in SLOT_HOLDING_STATUSES


def _to_date(value: Union[date, datetime, None]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def _text(component: Any, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _raw_properties(component: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {}
    for name, value in component.items():
        values = value if isinstance(value, list) else [value]
        rendered = [
            v.to_ical().decode("utf-8", "replace") if hasattr(v, "to_ical") else str(v)
            for v in values
        ]
        raw[name] = rendered if len(rendered) > 1 else rendered[0]
    return raw


def _status(component: Any, title: Optional[str]) -> ExternalStatus:
    status = _text(component, "STATUS")
    if status:
        mapped = STATUS_MAP.get(status.upper())
        if mapped is not None:
            return mapped
    if title and any(marker in title.lower() for marker in BLOCKED_SUMMARY_MARKERS):
        return ExternalStatus.BLOCKED
    return ExternalStatus.RESERVED


def _end_date(component: Any, start: date) -> date:
    dtend = component.get("DTEND")
    if dtend is not None:
        end = _to_date(dtend.dt)
        if end is not None:
            return end

    duration = component.get("DURATION")
    if duration is not None and isinstance(duration.dt, timedelta):
        return start + timedelta(days=max(duration.dt.days, 1))

    # DTSTART-only all-day event
    return start + timedelta(days=1)


def normalize_event(component: Any) -> Optional[ExternalEvent]:
    """
    Convert one VEVENT into an ExternalEvent.

    Returns:
        Optional[ExternalEvent]: None when the event has no UID or DTSTART, or
        when its end does not fall after its start
    """
    uid = _text(component, "UID")
    dtstart = component.get("DTSTART")
    if not uid or dtstart is None:
        logger.warning("ical_event_skipped", reason="missing_uid_or_dtstart", uid=uid)
        return None

    start = _to_date(dtstart.dt)
    if start is None:
        logger.warning("ical_event_skipped", reason="unparseable_dtstart", uid=uid)
        return None

    end = _end_date(component, start)
    if end <= start:
        logger.warning(
            "ical_event_skipped",
            reason="end_not_after_start",
            uid=uid,
            start=start.isoformat(),
            end=end.isoformat(),
        )
        return None

    title = _text(component, "SUMMARY")
    status = _status(component, title)
    transparent = (_text(component, "TRANSP") or "").upper() == "TRANSPARENT"

    return ExternalEvent(
        external_uid=uid,
        start=start,
        end=end,
        status=status,
        is_blocking=status != ExternalStatus.CANCELLED and not transparent,
        title=title,
        description=_text(component, "DESCRIPTION"),
        raw_event=_raw_properties(component),
    )


def normalize_feed(body: Union[bytes, str]) -> list[ExternalEvent]:
    """
    Parse an iCalendar document into normalized events.

    Invalid events are skipped and logged. When a UID appears more than once
    the first occurrence wins.

    Args:
        body: Raw feed body

    Returns:
        list[ExternalEvent]: Events in feed order

    Raises:
        FeedParseError: The body is not an iCalendar document
    """
    try:
        calendar = Calendar.from_ical(body)
    except ValueError as e:
        raise FeedParseError(f"Invalid iCalendar data: {e}") from e

    if calendar.name != "VCALENDAR":
        raise FeedParseError(f"Expected VCALENDAR, got {calendar.name}")

    events: list[ExternalEvent] = []
    seen: set[str] = set()
    for component in calendar.walk("VEVENT"):
        event = normalize_event(component)
        if event is None:
            continue
        if event.external_uid in seen:
            logger.warning("ical_duplicate_uid_skipped", uid=event.external_uid)
            continue
        seen.add(event.external_uid)
        events.append(event)

    logger.debug("ical_feed_normalized", events=len(events))
    return events
