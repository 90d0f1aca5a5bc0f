"""Interview scheduling service: lifecycle operations and queries."""

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..applications.models import ApplicationStatus
from ..applications.service import append_note, get_application, update_status
from ..errors import Conflict, InvalidRequest, NotFound, Unauthorized
from ..integrations.locks import LockService
from ..notifications.dispatch import Notification, NotificationDispatcher, NotificationKind, dispatch_all
from ..scheduling.availability import replace_slots
from ..scheduling.conflicts import find_conflict
from ..scheduling.intervals import TimeWindow, as_utc
from .lifecycle import ensure_transition
from .models import ACTIVE_STATUSES, Interview, InterviewSlot, InterviewStatus, InterviewType
from .schemas import POSITIVE_RECOMMENDATIONS, InterviewFeedback, InterviewFilters

logger = logging.getLogger(__name__)


def interviewer_lock_key(interviewer_id: UUID) -> str:
    return f"interviewer:{interviewer_id}"


class SchedulingService:
    """Transactional entry points of the interview lifecycle.

    Built once at startup with its lock service and notification dispatcher
    and shared by every request; each call brings its own Session. A write
    for an interviewer holds that interviewer's lock from the conflict check
    until commit or rollback, and a lease that expired in between aborts the
    commit. Notifications queued during a call go out only
    after its commit succeeded.
    """

    def __init__(self, locks: LockService, dispatcher: NotificationDispatcher) -> None:
        self._locks = locks
        self._dispatcher = dispatcher

    @contextmanager
    def _transaction(self, db: Session, lock_key: str) -> Iterator[list[Notification]]:
        outbox: list[Notification] = []
        with self._locks.hold(lock_key) as lease:
            try:
                yield outbox
                lease.ensure_held()
                db.commit()
            except Exception:
                db.rollback()
                raise
        dispatch_all(self._dispatcher, outbox)

    # ── Commands ──────────────────────────────────────────────────────

    def schedule(
        self,
        db: Session,
        application_id: UUID,
        interviewer_id: UUID,
        window: TimeWindow,
        interview_type: InterviewType,
        location: str | None = None,
        meeting_link: str | None = None,
        notes: str | None = None,
    ) -> Interview:
        """Book a new interview for an application."""
        window = TimeWindow(as_utc(window.start), as_utc(window.end))
        application = get_application(db, application_id)
        if not application:
            raise NotFound("Application not found", entity="application", id=str(application_id))

        try:
            with self._transaction(db, interviewer_lock_key(interviewer_id)) as outbox:
                existing = get_active_interview_for_application(db, application_id)
                if existing:
                    raise Conflict(
                        "Application already has an active interview",
                        application_id=str(application_id),
                        existing_interview_id=str(existing.id),
                    )
                self._ensure_free(db, interviewer_id, window)

                prior_status = application.status
                if prior_status == ApplicationStatus.INTERVIEW_SCHEDULED:
                    prior_status = ApplicationStatus.SHORTLISTED

                interview = Interview(
                    application_id=application.id,
                    job_id=application.job_id,
                    candidate_id=application.candidate_id,
                    interviewer_id=interviewer_id,
                    scheduled_at=window.start,
                    ends_at=window.end,
                    duration_minutes=window.minutes,
                    interview_type=InterviewType(interview_type),
                    status=InterviewStatus.SCHEDULED,
                    location=location,
                    meeting_link=meeting_link,
                    notes=notes,
                    application_prior_status=prior_status,
                )
                db.add(interview)
                update_status(db, application, ApplicationStatus.INTERVIEW_SCHEDULED)
                db.flush()

                outbox.append(_notice(
                    interview, interview.candidate_id, NotificationKind.SCHEDULED,
                    "Interview Scheduled", "Your interview has been scheduled",
                ))
                outbox.append(_notice(
                    interview, interviewer_id, NotificationKind.SCHEDULED,
                    "Interview Scheduled", "A new interview was added to your calendar",
                ))
        except IntegrityError as exc:
            # Lost a race with a concurrent booking for the same application
            raise Conflict(
                "Application already has an active interview",
                application_id=str(application_id),
            ) from exc

        logger.info(
            "Scheduled interview %s for application %s with %s at %s",
            interview.id, application_id, interviewer_id, window.start.isoformat(),
        )
        return interview

    def confirm(self, db: Session, interview_id: UUID, confirmed_by: UUID) -> Interview:
        interview = self._get_or_404(db, interview_id)
        with self._transaction(db, interviewer_lock_key(interview.interviewer_id)) as outbox:
            db.refresh(interview)
            _ensure_participant(interview, confirmed_by)
            ensure_transition(interview, InterviewStatus.CONFIRMED)
            interview.status = InterviewStatus.CONFIRMED
            db.flush()
            outbox.append(_notice(
                interview, _counterpart(interview, confirmed_by), NotificationKind.CONFIRMED,
                "Interview Confirmed", "Your interview has been confirmed",
            ))

        logger.info("Interview %s confirmed by %s", interview_id, confirmed_by)
        return interview

    def reschedule(
        self,
        db: Session,
        interview_id: UUID,
        new_window: TimeWindow,
        reason: str | None = None,
    ) -> Interview:
        """Move an interview to ``new_window``; the status becomes ``rescheduled``."""
        new_window = TimeWindow(as_utc(new_window.start), as_utc(new_window.end))
        interview = self._get_or_404(db, interview_id)
        with self._transaction(db, interviewer_lock_key(interview.interviewer_id)) as outbox:
            db.refresh(interview)
            ensure_transition(interview, InterviewStatus.RESCHEDULED)
            self._ensure_free(db, interview.interviewer_id, new_window, exclude_interview_id=interview.id)

            old_start = as_utc(interview.scheduled_at)
            interview.scheduled_at = new_window.start
            interview.ends_at = new_window.end
            interview.duration_minutes = new_window.minutes
            interview.status = InterviewStatus.RESCHEDULED
            interview.append_note(f"Rescheduled: {reason}" if reason else "Interview rescheduled")
            db.flush()

            extra = {"old_time": old_start.isoformat(), "reason": reason}
            outbox.append(_notice(
                interview, interview.candidate_id, NotificationKind.RESCHEDULED,
                "Interview Rescheduled", "Your interview has been rescheduled", **extra,
            ))
            outbox.append(_notice(
                interview, interview.interviewer_id, NotificationKind.RESCHEDULED,
                "Interview Rescheduled", "An interview on your calendar has moved", **extra,
            ))

        logger.info("Rescheduled interview %s to %s", interview_id, new_window.start.isoformat())
        return interview

    def cancel(self, db: Session, interview_id: UUID, reason: str, cancelled_by: UUID) -> Interview:
        """Cancel an interview and hand the application back its prior status."""
        interview = self._get_or_404(db, interview_id)
        with self._transaction(db, interviewer_lock_key(interview.interviewer_id)) as outbox:
            db.refresh(interview)
            _ensure_participant(interview, cancelled_by)
            ensure_transition(interview, InterviewStatus.CANCELLED)

            interview.status = InterviewStatus.CANCELLED
            interview.append_note(f"Cancelled by {cancelled_by}: {reason}")
            application = interview.application
            if application is not None and application.status == ApplicationStatus.INTERVIEW_SCHEDULED:
                update_status(db, application, interview.application_prior_status or ApplicationStatus.SHORTLISTED)
            db.flush()

            outbox.append(_notice(
                interview, _counterpart(interview, cancelled_by), NotificationKind.CANCELLED,
                "Interview Cancelled", "Your interview has been cancelled", reason=reason,
            ))

        logger.info("Cancelled interview %s by %s", interview_id, cancelled_by)
        return interview

    def submit_feedback(
        self,
        db: Session,
        interview_id: UUID,
        interviewer_id: UUID,
        feedback: InterviewFeedback,
    ) -> Interview:
        """Attach the interviewer's feedback and complete the interview.

        A missing interview and a foreign interviewer get the same NotFound.
        """
        interview = (
            db.query(Interview)
            .filter(Interview.id == interview_id, Interview.interviewer_id == interviewer_id)
            .first()
        )
        if not interview:
            raise NotFound("Interview not found or unauthorized", entity="interview", id=str(interview_id))

        with self._transaction(db, interviewer_lock_key(interviewer_id)) as outbox:
            db.refresh(interview)
            ensure_transition(interview, InterviewStatus.COMPLETED)

            record = feedback.model_dump(mode="json")
            record["submitted_at"] = datetime.now(UTC).isoformat()
            interview.feedback = record
            interview.status = InterviewStatus.COMPLETED
            if feedback.recommendation in POSITIVE_RECOMMENDATIONS and interview.application is not None:
                append_note(interview.application, f"Interview feedback: {feedback.recommendation.value}")
            db.flush()

            outbox.append(_notice(
                interview, interview.candidate_id, NotificationKind.COMPLETED,
                "Interview Completed", "Thanks for interviewing, we will be in touch",
            ))

        logger.info("Feedback submitted for interview %s (%s)", interview_id, feedback.recommendation.value)
        return interview

    def set_availability(self, db: Session, user_id: UUID, slots: Iterable) -> list[InterviewSlot]:
        """Replace the user's slot set in a single transaction."""
        with self._transaction(db, f"availability:{user_id}"):
            created = replace_slots(db, user_id, slots)
        logger.info("Availability for %s replaced with %d slots", user_id, len(created))
        return created

    # ── Helpers ───────────────────────────────────────────────────────

    def _get_or_404(self, db: Session, interview_id: UUID) -> Interview:
        interview = get_interview(db, interview_id)
        if not interview:
            raise NotFound("Interview not found", entity="interview", id=str(interview_id))
        return interview

    def _ensure_free(
        self,
        db: Session,
        interviewer_id: UUID,
        window: TimeWindow,
        exclude_interview_id: UUID | None = None,
    ) -> None:
        conflict = find_conflict(db, interviewer_id, window, exclude_interview_id)
        if conflict is not None:
            busy = conflict.window
            raise Conflict(
                "Interviewer is not available at this time",
                interviewer_id=str(interviewer_id),
                conflicting_interview_id=str(conflict.id),
                conflicting_start=busy.start.isoformat(),
                conflicting_end=busy.end.isoformat(),
            )


def _ensure_participant(interview: Interview, actor_id: UUID) -> None:
    if actor_id not in (interview.candidate_id, interview.interviewer_id):
        raise Unauthorized("Only the candidate or the interviewer may do this", interview_id=str(interview.id))


def _counterpart(interview: Interview, actor_id: UUID) -> UUID:
    return interview.candidate_id if actor_id == interview.interviewer_id else interview.interviewer_id


def _notice(interview: Interview, user_id: UUID, kind: str, title: str, body: str, **extra) -> Notification:
    data = {
        "interview_id": str(interview.id),
        "scheduled_at": as_utc(interview.scheduled_at).isoformat(),
        "type": str(interview.interview_type),
        "location": interview.location or interview.meeting_link,
    }
    data.update(extra)
    return Notification(user_id=user_id, kind=kind, title=title, body=body, data=data)


# ── Queries ───────────────────────────────────────────────────────────


def get_interview(db: Session, interview_id: UUID) -> Interview | None:
    return db.query(Interview).filter(Interview.id == interview_id).first()


def get_active_interview_for_application(db: Session, application_id: UUID) -> Interview | None:
    return (
        db.query(Interview)
        .filter(Interview.application_id == application_id, Interview.status.in_(ACTIVE_STATUSES))
        .first()
    )


def get_interviews(
    db: Session,
    filters: InterviewFilters | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Interview], int]:
    """Filtered page of interviews ordered by start time, plus the total count."""
    if page < 1 or not 1 <= limit <= 100:
        raise InvalidRequest("page must be >= 1 and limit between 1 and 100", page=page, limit=limit)
    filters = filters or InterviewFilters()

    query = db.query(Interview)
    if filters.interviewer_id:
        query = query.filter(Interview.interviewer_id == filters.interviewer_id)
    if filters.candidate_id:
        query = query.filter(Interview.candidate_id == filters.candidate_id)
    if filters.job_id:
        query = query.filter(Interview.job_id == filters.job_id)
    if filters.status:
        query = query.filter(Interview.status == filters.status)
    if filters.from_date:
        query = query.filter(Interview.scheduled_at >= as_utc(filters.from_date))
    if filters.to_date:
        query = query.filter(Interview.scheduled_at <= as_utc(filters.to_date))

    total = query.count()
    items = (
        query.order_by(Interview.scheduled_at.asc(), Interview.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def get_upcoming_interviews(
    db: Session,
    user_id: UUID,
    now: datetime | None = None,
    limit: int = 10,
) -> list[Interview]:
    """Non-terminal interviews from ``now`` on where the user takes part."""
    now = as_utc(now) if now else datetime.now(UTC)
    return (
        db.query(Interview)
        .filter(
            or_(Interview.candidate_id == user_id, Interview.interviewer_id == user_id),
            Interview.status.in_(ACTIVE_STATUSES),
            Interview.scheduled_at >= now,
        )
        .order_by(Interview.scheduled_at.asc())
        .limit(limit)
        .all()
    )
