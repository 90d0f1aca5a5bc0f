"""Interviewer availability: slot rules minus booked interviews.

Slot rules are declared in the interviewer's local time and zone. Each day
in the requested range gets the rules that apply to it, every rule is cut
into fixed-size sub-windows, and a sub-window is reported unavailable once
the interviews overlapping it reach the rule's capacity. Output stays in the
rule's local time; callers convert for display.
"""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import InvalidRequest
from ..interview.models import ACTIVE_STATUSES, Interview, InterviewSlot
from .intervals import TimeWindow, overlaps

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityWindow:
    date: date
    start_time: time
    end_time: time
    available: bool
    timezone: str = "UTC"

    def to_dict(self) -> dict:
        return {
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "available": self.available,
            "timezone": self.timezone,
        }


def day_of_week(day: date) -> int:
    """Day index with 0 = Sunday, matching InterviewSlot.day_of_week."""
    return (day.weekday() + 1) % 7


def slot_applies(slot: InterviewSlot, day: date) -> bool:
    if not slot.is_recurring:
        return day == slot.effective_from
    if slot.day_of_week != day_of_week(day):
        return False
    if day < slot.effective_from:
        return False
    return slot.effective_until is None or day <= slot.effective_until


def partition(day: date, start: time, end: time, step: timedelta) -> Iterator[tuple[datetime, datetime]]:
    """Cut [start, end) on ``day`` into ``step``-sized local windows, clipping the last."""
    cursor = datetime.combine(day, start)
    stop = datetime.combine(day, end)
    while cursor < stop:
        nxt = min(cursor + step, stop)
        yield cursor, nxt
        cursor = nxt


def _to_instant(local: datetime, zone: ZoneInfo) -> datetime:
    return local.replace(tzinfo=zone).astimezone(UTC)


def _load_slots(db: Session, interviewer_id: UUID, start_date: date, end_date: date) -> list[InterviewSlot]:
    return (
        db.query(InterviewSlot)
        .filter(
            InterviewSlot.user_id == interviewer_id,
            InterviewSlot.effective_from <= end_date,
            or_(InterviewSlot.effective_until.is_(None), InterviewSlot.effective_until >= start_date),
        )
        .order_by(InterviewSlot.start_time.asc())
        .all()
    )


def _load_busy(db: Session, interviewer_id: UUID, start_date: date, end_date: date) -> list[TimeWindow]:
    # Pad by a day on each side: local days can straddle UTC midnight
    range_start = datetime.combine(start_date - timedelta(days=1), time.min, tzinfo=UTC)
    range_end = datetime.combine(end_date + timedelta(days=2), time.min, tzinfo=UTC)
    rows = (
        db.query(Interview)
        .filter(
            Interview.interviewer_id == interviewer_id,
            Interview.status.in_(ACTIVE_STATUSES),
            Interview.scheduled_at < range_end,
            Interview.ends_at > range_start,
        )
        .all()
    )
    return [row.window for row in rows]


def compute_availability(
    db: Session,
    interviewer_id: UUID,
    start_date: date,
    end_date: date,
    granularity_minutes: int | None = None,
) -> list[AvailabilityWindow]:
    """Per-day bookable windows for ``interviewer_id`` over [start_date, end_date].

    Days without an applicable slot rule are left out entirely.
    """
    if end_date < start_date:
        raise InvalidRequest("end_date must not precede start_date", start_date=start_date, end_date=end_date)
    span = (end_date - start_date).days + 1
    if span > settings.availability_max_days:
        raise InvalidRequest(
            f"Range too long (max {settings.availability_max_days} days)",
            start_date=start_date,
            end_date=end_date,
        )
    granularity = granularity_minutes or settings.availability_granularity_minutes
    if granularity <= 0:
        raise InvalidRequest("granularity must be positive", granularity_minutes=granularity)
    step = timedelta(minutes=granularity)

    slots = _load_slots(db, interviewer_id, start_date, end_date)
    if not slots:
        return []
    busy = _load_busy(db, interviewer_id, start_date, end_date)

    windows: list[AvailabilityWindow] = []
    day = start_date
    while day <= end_date:
        for slot in (s for s in slots if slot_applies(s, day)):
            windows.extend(_slot_windows(slot, day, step, busy))
        day += timedelta(days=1)

    logger.debug(
        "Availability for %s %s..%s: %d windows from %d rules",
        interviewer_id, start_date, end_date, len(windows), len(slots),
    )
    return windows


def _slot_windows(
    slot: InterviewSlot,
    day: date,
    step: timedelta,
    busy: Iterable[TimeWindow],
) -> Iterator[AvailabilityWindow]:
    zone = ZoneInfo(slot.timezone)
    capacity = slot.max_interviews_per_slot or 1
    for local_start, local_end in partition(day, slot.start_time, slot.end_time, step):
        utc_start, utc_end = _to_instant(local_start, zone), _to_instant(local_end, zone)
        if utc_end <= utc_start:
            # Falls inside a DST gap: the local time does not exist that day
            continue
        instant = TimeWindow(utc_start, utc_end)
        booked = sum(1 for window in busy if overlaps(window, instant))
        yield AvailabilityWindow(
            date=day,
            start_time=local_start.time(),
            end_time=local_end.time(),
            available=booked < capacity,
            timezone=slot.timezone,
        )


def group_by_day(windows: Iterable[AvailabilityWindow]) -> list[dict]:
    """Shape windows as ``[{"date": ..., "slots": [...]}]`` in date order."""
    days: dict[date, list[dict]] = {}
    for window in windows:
        days.setdefault(window.date, []).append(window.to_dict())
    return [{"date": d.isoformat(), "slots": days[d]} for d in sorted(days)]


def replace_slots(db: Session, user_id: UUID, slots: Iterable) -> list[InterviewSlot]:
    """Swap the user's whole slot set for ``slots``. Caller owns the transaction."""
    db.query(InterviewSlot).filter(InterviewSlot.user_id == user_id).delete(synchronize_session=False)
    created = [
        InterviewSlot(
            user_id=user_id,
            day_of_week=slot.day_of_week,
            start_time=slot.start_time,
            end_time=slot.end_time,
            timezone=slot.timezone,
            is_recurring=slot.is_recurring,
            effective_from=slot.effective_from,
            effective_until=slot.effective_until,
            max_interviews_per_slot=slot.max_interviews_per_slot,
        )
        for slot in slots
    ]
    db.add_all(created)
    db.flush()
    return created
