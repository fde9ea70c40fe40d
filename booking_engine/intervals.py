"""
Half-open calendar-day intervals.

Every stay, hold, blackout and imported reservation is a ``[start, end)``
range of calendar days: ``start`` is the check-in day and ``end`` the
check-out day, which is not occupied. Back-to-back stays therefore touch
without overlapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional

from booking_engine.errors import InvalidRequestError
from booking_engine.models.enums import BlockSource


@dataclass(frozen=True, order=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise InvalidRequestError(
                f"Invalid date range: start {self.start} must be before end {self.end}"
            )

    @classmethod
    def from_strings(cls, start: str, end: str) -> DateRange:
        """Parse ISO dates (YYYY-MM-DD)."""
        try:
            return cls(date.fromisoformat(start), date.fromisoformat(end))
        except (TypeError, ValueError) as e:
            raise InvalidRequestError(f"Invalid date: {e}") from e

    @property
    def nights(self) -> int:
        return (self.end - self.start).days

    def overlaps(self, other: DateRange) -> bool:
        return self.start < other.end and other.start < self.end

    def intersection(self, other: DateRange) -> Optional[DateRange]:
        if not self.overlaps(other):
            return None
        return DateRange(max(self.start, other.start), min(self.end, other.end))

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    def iter_nights(self) -> Iterator[date]:
        """Yield each occupied night, check-in day through the day before check-out."""
        day = self.start
        while day < self.end:
            yield day
            day += timedelta(days=1)

    def as_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(frozen=True)
class BlockingRange:
    """A range that makes dates unavailable, clipped to the range being queried."""

    start: date
    end: date
    source: BlockSource
    reference: str

    def as_dict(self) -> dict[str, str]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "source": self.source.value,
            "reference": self.reference,
        }
