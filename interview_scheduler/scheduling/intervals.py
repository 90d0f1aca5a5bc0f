"""Half-open time window arithmetic.

A window covers [start, end): two windows that merely touch
(``a.end == b.start``) do not overlap.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta


@dataclass(frozen=True, order=True)
class TimeWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError(f"window end {self.end.isoformat()} must be after start {self.start.isoformat()}")

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> "TimeWindow":
        return cls(start, start + timedelta(minutes=minutes))

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "TimeWindow") -> bool:
        return overlaps(self, other)


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    return a.start < b.end and b.start < a.end


def merge(windows: Iterable[TimeWindow]) -> list[TimeWindow]:
    """Union of a set of windows as sorted, disjoint windows."""
    merged: list[TimeWindow] = []
    for window in sorted(windows):
        if merged and window.start <= merged[-1].end:
            last = merged[-1]
            if window.end > last.end:
                merged[-1] = TimeWindow(last.start, window.end)
        else:
            merged.append(window)
    return merged


def subtract(windows: Iterable[TimeWindow], busy: Iterable[TimeWindow]) -> list[TimeWindow]:
    """Return the parts of ``windows`` not covered by any ``busy`` window."""
    blocked = merge(busy)
    free: list[TimeWindow] = []
    for window in merge(windows):
        cursor = window.start
        for b in blocked:
            if b.end <= cursor or b.start >= window.end:
                continue
            if b.start > cursor:
                free.append(TimeWindow(cursor, b.start))
            cursor = max(cursor, b.end)
            if cursor >= window.end:
                break
        if cursor < window.end:
            free.append(TimeWindow(cursor, window.end))
    return free


def as_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime (SQLite hands back naive values)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
