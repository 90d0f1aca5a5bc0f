"""Interview request schemas, validated at the API boundary."""

import enum
from datetime import date, datetime, time
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator

from ..config import settings
from .models import InterviewStatus, InterviewType


class Recommendation(enum.StrEnum):
    STRONG_YES = "strong_yes"
    YES = "yes"
    MAYBE = "maybe"
    NO = "no"
    STRONG_NO = "strong_no"


POSITIVE_RECOMMENDATIONS = (Recommendation.STRONG_YES, Recommendation.YES)


class InterviewFeedback(BaseModel):
    """Interviewer feedback; stored on the interview as JSON once validated."""

    rating: int = Field(..., ge=1, le=5)
    recommendation: Recommendation
    technical_skills: int | None = Field(None, ge=1, le=5)
    communication_skills: int | None = Field(None, ge=1, le=5)
    culture_fit: int | None = Field(None, ge=1, le=5)
    strengths: str | None = Field(None, max_length=5000)
    weaknesses: str | None = Field(None, max_length=5000)
    notes: str | None = Field(None, max_length=5000)

    model_config = {"extra": "forbid"}


class ScheduleRequest(BaseModel):
    application_id: UUID
    interviewer_id: UUID
    scheduled_at: datetime
    duration_minutes: int = Field(..., ge=settings.min_interview_minutes, le=settings.max_interview_minutes)
    type: InterviewType
    location: str | None = Field(None, max_length=500)
    meeting_link: HttpUrl | None = None
    notes: str | None = Field(None, max_length=2000)


class RescheduleRequest(BaseModel):
    scheduled_at: datetime
    duration_minutes: int | None = Field(None, ge=settings.min_interview_minutes, le=settings.max_interview_minutes)
    reason: str | None = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class SlotDefinition(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    timezone: str = "UTC"
    is_recurring: bool = True
    effective_from: date
    effective_until: date | None = None
    max_interviews_per_slot: int = Field(1, ge=1, le=10)

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            # OSError: names that resolve to a directory, e.g. "America"
            raise ValueError(f"unknown timezone {v!r}") from exc
        return v

    @model_validator(mode="after")
    def check_ranges(self) -> "SlotDefinition":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.effective_until is not None and self.effective_until < self.effective_from:
            raise ValueError("effective_until must not precede effective_from")
        return self


class AvailabilityRequest(BaseModel):
    slots: list[SlotDefinition] = Field(default_factory=list, max_length=200)


class InterviewFilters(BaseModel):
    interviewer_id: UUID | None = None
    candidate_id: UUID | None = None
    job_id: UUID | None = None
    status: InterviewStatus | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
