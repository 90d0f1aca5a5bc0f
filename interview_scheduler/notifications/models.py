"""Reminder tracking model."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from ..database.base import Base


class ReminderType:
    DAY_BEFORE = "24_hour"
    HOUR_BEFORE = "1_hour"
    CUSTOM = "custom"


class ReminderMarker(Base):
    """Records that a reminder kind was sent for an interview. Append-only."""

    __tablename__ = "interview_reminders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    interview_id = Column(
        UUID(as_uuid=True),
        ForeignKey("interviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reminder_type = Column(String(50), nullable=False)
    sent_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (UniqueConstraint("interview_id", "reminder_type", name="uq_interview_reminders_kind"),)
