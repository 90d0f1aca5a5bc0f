"""Job application model (the scheduling core only reads and nudges its status)."""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..database.base import Base


class ApplicationStatus(enum.StrEnum):
    """Application pipeline status."""

    SUBMITTED = "submitted"
    REVIEWING = "reviewing"
    SHORTLISTED = "shortlisted"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    OFFERED = "offered"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Application(Base):
    __tablename__ = "applications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_id = Column(UUID(as_uuid=True), nullable=False)
    candidate_id = Column(UUID(as_uuid=True), nullable=False)
    status = Column(
        SQLEnum(ApplicationStatus, name="application_status", values_callable=lambda e: [s.value for s in e]),
        default=ApplicationStatus.SUBMITTED,
        nullable=False,
    )
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    interviews = relationship("Interview", back_populates="application")

    __table_args__ = (
        Index("idx_applications_job_id", "job_id"),
        Index("idx_applications_candidate_id", "candidate_id"),
    )
