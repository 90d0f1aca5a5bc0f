"""Interview scheduling models and enums."""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..applications.models import ApplicationStatus
from ..database.base import Base
from ..scheduling.intervals import TimeWindow, as_utc


class InterviewType(enum.StrEnum):
    PHONE = "phone"
    VIDEO = "video"
    ONSITE = "onsite"


class InterviewStatus(enum.StrEnum):
    """Interview lifecycle status."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (InterviewStatus.SCHEDULED, InterviewStatus.CONFIRMED, InterviewStatus.RESCHEDULED)
TERMINAL_STATUSES = (InterviewStatus.COMPLETED, InterviewStatus.CANCELLED)

_ACTIVE_SQL = "status IN ('scheduled', 'confirmed', 'rescheduled')"


class Interview(Base):
    __tablename__ = "interviews"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    job_id = Column(UUID(as_uuid=True), nullable=False)
    candidate_id = Column(UUID(as_uuid=True), nullable=False)
    interviewer_id = Column(UUID(as_uuid=True), nullable=False)

    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    interview_type = Column(
        SQLEnum(InterviewType, name="interview_type", values_callable=lambda e: [s.value for s in e]),
        nullable=False,
    )
    status = Column(
        SQLEnum(InterviewStatus, name="interview_status", values_callable=lambda e: [s.value for s in e]),
        default=InterviewStatus.SCHEDULED,
        nullable=False,
    )
    location = Column(String(500), nullable=True)
    meeting_link = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    feedback = Column(JSON, nullable=True)
    application_prior_status = Column(
        SQLEnum(ApplicationStatus, name="application_status", values_callable=lambda e: [s.value for s in e]),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    application = relationship("Application", back_populates="interviews")

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_interviews_duration_positive"),
        Index("idx_interviews_scheduled", "scheduled_at"),
        Index("idx_interviews_interviewer_window", "interviewer_id", "scheduled_at", "ends_at"),
        Index("idx_interviews_candidate_id", "candidate_id"),
        Index("idx_interviews_job_id", "job_id"),
        Index("idx_interviews_status", "status"),
        # At most one non-terminal interview per application
        Index(
            "uq_interviews_active_application",
            "application_id",
            unique=True,
            postgresql_where=text(_ACTIVE_SQL),
            sqlite_where=text(_ACTIVE_SQL),
        ),
    )

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(as_utc(self.scheduled_at), as_utc(self.ends_at))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def append_note(self, note: str) -> None:
        self.notes = f"{self.notes}\n{note}" if self.notes else note


class InterviewSlot(Base):
    """A declared availability rule; replaced wholesale, never edited in place."""

    __tablename__ = "interview_slots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    is_recurring = Column(Boolean, nullable=False, default=True)
    effective_from = Column(Date, nullable=False)
    effective_until = Column(Date, nullable=True)
    max_interviews_per_slot = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_interview_slots_day_of_week"),
        CheckConstraint("end_time > start_time", name="ck_interview_slots_time_range"),
        CheckConstraint("max_interviews_per_slot >= 1", name="ck_interview_slots_capacity"),
        Index("idx_interview_slots_effective", "effective_from", "effective_until"),
    )
