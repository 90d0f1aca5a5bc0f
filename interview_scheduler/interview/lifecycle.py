"""Interview status transition table.

Every status change goes through ``ensure_transition``; anything not listed
here is rejected, which makes ``completed`` and ``cancelled`` terminal.
"""

from ..errors import InvalidState
from .models import InterviewStatus

TRANSITIONS: dict[InterviewStatus, frozenset[InterviewStatus]] = {
    InterviewStatus.SCHEDULED: frozenset({
        InterviewStatus.CONFIRMED,
        InterviewStatus.RESCHEDULED,
        InterviewStatus.CANCELLED,
        InterviewStatus.COMPLETED,
    }),
    InterviewStatus.CONFIRMED: frozenset({
        InterviewStatus.RESCHEDULED,
        InterviewStatus.CANCELLED,
        InterviewStatus.COMPLETED,
    }),
    InterviewStatus.RESCHEDULED: frozenset({
        InterviewStatus.CONFIRMED,
        InterviewStatus.RESCHEDULED,
        InterviewStatus.CANCELLED,
        InterviewStatus.COMPLETED,
    }),
    InterviewStatus.COMPLETED: frozenset(),
    InterviewStatus.CANCELLED: frozenset(),
}


def can_transition(current: InterviewStatus, target: InterviewStatus) -> bool:
    return target in TRANSITIONS.get(InterviewStatus(current), frozenset())


def ensure_transition(interview, target: InterviewStatus) -> None:
    """Raise InvalidState unless ``interview`` may move to ``target``."""
    current = InterviewStatus(interview.status)
    if not can_transition(current, target):
        raise InvalidState(
            f"Cannot move interview from {current.value} to {target.value}",
            interview_id=str(interview.id),
            status=current.value,
            attempted=target.value,
        )
