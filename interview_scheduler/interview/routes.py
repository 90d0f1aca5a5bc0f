"""Interview JSON API routes."""

from datetime import UTC, date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..database.base import get_db
from ..dependencies import get_current_user_id, get_scheduler
from ..errors import NotFound
from ..rate_limit import limiter
from ..scheduling.availability import compute_availability, group_by_day
from ..scheduling.intervals import TimeWindow, as_utc
from .models import Interview, InterviewSlot, InterviewStatus
from .schemas import (
    AvailabilityRequest,
    CancelRequest,
    InterviewFeedback,
    InterviewFilters,
    RescheduleRequest,
    ScheduleRequest,
)
from .service import SchedulingService, get_interview, get_interviews, get_upcoming_interviews

router = APIRouter(prefix="/interviews", tags=["interviews"])


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


def serialize_interview(interview: Interview) -> dict:
    return {
        "id": str(interview.id),
        "application_id": str(interview.application_id),
        "job_id": str(interview.job_id),
        "candidate_id": str(interview.candidate_id),
        "interviewer_id": str(interview.interviewer_id),
        "scheduled_at": _iso(interview.scheduled_at),
        "ends_at": _iso(interview.ends_at),
        "duration_minutes": interview.duration_minutes,
        "type": str(interview.interview_type),
        "status": str(interview.status),
        "location": interview.location,
        "meeting_link": interview.meeting_link,
        "notes": interview.notes,
        "feedback": interview.feedback,
        "created_at": _iso(interview.created_at),
        "updated_at": _iso(interview.updated_at),
    }


def _serialize_slot(slot: InterviewSlot) -> dict:
    return {
        "id": str(slot.id),
        "day_of_week": slot.day_of_week,
        "start_time": slot.start_time.strftime("%H:%M"),
        "end_time": slot.end_time.strftime("%H:%M"),
        "timezone": slot.timezone,
        "is_recurring": slot.is_recurring,
        "effective_from": slot.effective_from.isoformat(),
        "effective_until": slot.effective_until.isoformat() if slot.effective_until else None,
        "max_interviews_per_slot": slot.max_interviews_per_slot,
    }


@router.post("")
@limiter.limit(settings.rate_limit_schedule)
def schedule_interview(
    request: Request,
    payload: ScheduleRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    scheduler: SchedulingService = Depends(get_scheduler),
):
    scheduled_at = as_utc(payload.scheduled_at)
    if scheduled_at < datetime.now(UTC):
        return JSONResponse({"error": "Cannot schedule an interview in the past"}, status_code=400)

    interview = scheduler.schedule(
        db,
        payload.application_id,
        payload.interviewer_id,
        TimeWindow.from_duration(scheduled_at, payload.duration_minutes),
        payload.type,
        location=payload.location,
        meeting_link=str(payload.meeting_link) if payload.meeting_link else None,
        notes=payload.notes,
    )
    return JSONResponse({"ok": True, "interview": serialize_interview(interview)}, status_code=201)


@router.get("")
def list_interviews(
    interviewer_id: UUID | None = None,
    candidate_id: UUID | None = None,
    job_id: UUID | None = None,
    status: InterviewStatus | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    filters = InterviewFilters(
        interviewer_id=interviewer_id,
        candidate_id=candidate_id,
        job_id=job_id,
        status=status,
        from_date=from_date,
        to_date=to_date,
    )
    items, total = get_interviews(db, filters, page, limit)
    return JSONResponse(
        {
            "interviews": [serialize_interview(i) for i in items],
            "total": total,
            "page": page,
            "limit": limit,
        }
    )


@router.get("/upcoming")
def upcoming_interviews(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    interviews = get_upcoming_interviews(db, user_id)
    return JSONResponse({"interviews": [serialize_interview(i) for i in interviews], "total": len(interviews)})


@router.post("/availability")
def set_availability(
    payload: AvailabilityRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    scheduler: SchedulingService = Depends(get_scheduler),
):
    slots = scheduler.set_availability(db, user_id, payload.slots)
    return JSONResponse({"ok": True, "slots": [_serialize_slot(s) for s in slots]})


@router.get("/availability/{interviewer_id}")
def get_availability(
    interviewer_id: UUID,
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    windows = compute_availability(db, interviewer_id, start_date, end_date)
    return JSONResponse({"interviewer_id": str(interviewer_id), "availability": group_by_day(windows)})


@router.get("/{interview_id}")
def get_interview_detail(
    interview_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    interview = get_interview(db, interview_id)
    if not interview:
        return JSONResponse({"error": "Interview not found"}, status_code=404)
    return JSONResponse({"interview": serialize_interview(interview)})


@router.put("/{interview_id}/confirm")
def confirm_interview(
    interview_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    scheduler: SchedulingService = Depends(get_scheduler),
):
    interview = scheduler.confirm(db, interview_id, user_id)
    return JSONResponse({"ok": True, "interview": serialize_interview(interview)})


@router.put("/{interview_id}/reschedule")
def reschedule_interview(
    interview_id: UUID,
    payload: RescheduleRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    scheduler: SchedulingService = Depends(get_scheduler),
):
    current = get_interview(db, interview_id)
    if not current:
        raise NotFound("Interview not found", entity="interview", id=str(interview_id))

    duration = payload.duration_minutes or current.duration_minutes
    window = TimeWindow.from_duration(as_utc(payload.scheduled_at), duration)
    interview = scheduler.reschedule(db, interview_id, window, payload.reason)
    return JSONResponse({"ok": True, "interview": serialize_interview(interview)})


@router.put("/{interview_id}/cancel")
def cancel_interview(
    interview_id: UUID,
    payload: CancelRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    scheduler: SchedulingService = Depends(get_scheduler),
):
    interview = scheduler.cancel(db, interview_id, payload.reason, user_id)
    return JSONResponse({"ok": True, "interview": serialize_interview(interview)})


@router.post("/{interview_id}/feedback")
def submit_feedback(
    interview_id: UUID,
    payload: InterviewFeedback,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    scheduler: SchedulingService = Depends(get_scheduler),
):
    interview = scheduler.submit_feedback(db, interview_id, user_id, payload)
    return JSONResponse({"ok": True, "interview": serialize_interview(interview)})
