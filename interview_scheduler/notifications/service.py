"""Interview reminder sweep.

Sends one reminder per interview per reminder kind. The marker row is written
only after the notification was handed to the dispatcher, so a crash between
the two can at worst repeat a reminder on the next sweep, never skip one.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..interview.models import Interview, InterviewStatus
from ..scheduling.intervals import as_utc
from .dispatch import Notification, NotificationDispatcher, NotificationKind
from .models import ReminderMarker, ReminderType

logger = logging.getLogger(__name__)

_REMINDABLE = (InterviewStatus.SCHEDULED, InterviewStatus.CONFIRMED)


def _already_reminded(db: Session, interview_id: uuid.UUID, reminder_type: str) -> bool:
    """Check if this reminder kind was already sent for this interview."""
    return (
        db.query(ReminderMarker)
        .filter(
            ReminderMarker.interview_id == interview_id,
            ReminderMarker.reminder_type == reminder_type,
        )
        .first()
        is not None
    )


def _still_due(db: Session, interview_id: uuid.UUID, now: datetime, lead: timedelta) -> bool:
    """Re-read status and start time; the loaded row may be stale after earlier commits."""
    row = db.query(Interview.status, Interview.scheduled_at).filter(Interview.id == interview_id).first()
    if row is None:
        return False
    status, starts_at = row
    return status in _REMINDABLE and now < as_utc(starts_at) <= now + lead


def find_due_interviews(
    db: Session,
    now: datetime,
    lead: timedelta,
    reminder_type: str = ReminderType.DAY_BEFORE,
) -> list[Interview]:
    """Interviews starting in (now, now + lead] that have no marker of this kind."""
    reminded = exists().where(
        ReminderMarker.interview_id == Interview.id,
        ReminderMarker.reminder_type == reminder_type,
    )
    return (
        db.query(Interview)
        .filter(
            Interview.status.in_(_REMINDABLE),
            Interview.scheduled_at > now,
            Interview.scheduled_at <= now + lead,
            ~reminded,
        )
        .order_by(Interview.scheduled_at.asc())
        .all()
    )


def _build_reminder(interview: Interview) -> Notification:
    starts = as_utc(interview.scheduled_at)
    return Notification(
        user_id=interview.candidate_id,
        kind=NotificationKind.REMINDER,
        title="Interview Reminder",
        body=f"Your {interview.interview_type} interview starts at {starts:%Y-%m-%d %H:%M} UTC",
        data={
            "interview_id": str(interview.id),
            "scheduled_at": starts.isoformat(),
            "type": str(interview.interview_type),
            "location": interview.location or interview.meeting_link,
        },
    )


def send_due_reminders(
    db: Session,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> int:
    """Send the 24-hour reminder for every due interview.

    Each interview is handled on its own: a failed dispatch is logged and left
    for the next sweep, a marker already written by a concurrent sweep is
    ignored, any other failed marker write is rolled back and the reminder goes
    out again next sweep. Returns the number of reminders sent.
    """
    now = as_utc(now) if now else datetime.now(UTC)
    lead = timedelta(hours=settings.reminder_lead_hours)

    sent_count = 0
    for interview in find_due_interviews(db, now, lead):
        interview_id = interview.id
        # Another sweep may have caught up, or the interview moved, since the query ran
        if _already_reminded(db, interview_id, ReminderType.DAY_BEFORE):
            continue
        if not _still_due(db, interview_id, now, lead):
            continue
        try:
            dispatcher.dispatch(_build_reminder(interview))
        except Exception:
            logger.exception("Failed to dispatch reminder for interview %s", interview_id)
            continue

        db.add(ReminderMarker(interview_id=interview_id, reminder_type=ReminderType.DAY_BEFORE))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("Reminder for interview %s already recorded by another sweep", interview_id)
            continue
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to record reminder for interview %s", interview_id)
            continue

        sent_count += 1
        logger.info("Sent %s reminder for interview %s", ReminderType.DAY_BEFORE, interview_id)

    return sent_count
