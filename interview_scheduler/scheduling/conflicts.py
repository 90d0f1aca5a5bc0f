"""Interviewer double-booking detection."""

from uuid import UUID

from sqlalchemy.orm import Session

from ..interview.models import ACTIVE_STATUSES, Interview
from .intervals import TimeWindow, as_utc, overlaps


def find_conflict(
    db: Session,
    interviewer_id: UUID,
    window: TimeWindow,
    exclude_interview_id: UUID | None = None,
) -> Interview | None:
    """Return the earliest non-terminal interview colliding with ``window``, if any.

    The SQL filter narrows the candidates by stored range; the decision is
    made by ``overlaps`` so boundary-touching interviews never collide.
    """
    window = TimeWindow(as_utc(window.start), as_utc(window.end))
    query = db.query(Interview).filter(
        Interview.interviewer_id == interviewer_id,
        Interview.status.in_(ACTIVE_STATUSES),
        Interview.scheduled_at < window.end,
        Interview.ends_at > window.start,
    )
    if exclude_interview_id is not None:
        query = query.filter(Interview.id != exclude_interview_id)

    for interview in query.order_by(Interview.scheduled_at.asc()).all():
        if overlaps(interview.window, window):
            return interview
    return None


def has_conflict(
    db: Session,
    interviewer_id: UUID,
    window: TimeWindow,
    exclude_interview_id: UUID | None = None,
) -> bool:
    return find_conflict(db, interviewer_id, window, exclude_interview_id) is not None
