"""Initial schema: applications, interviews, slots, reminders.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ENUM, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

application_status = ENUM(
    "submitted", "reviewing", "shortlisted", "interview_scheduled", "offered", "rejected", "withdrawn",
    name="application_status",
    create_type=False,
)
interview_type = ENUM("phone", "video", "onsite", name="interview_type", create_type=False)
interview_status = ENUM(
    "scheduled", "confirmed", "rescheduled", "completed", "cancelled",
    name="interview_status",
    create_type=False,
)

_ACTIVE_SQL = "status IN ('scheduled', 'confirmed', 'rescheduled')"


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (application_status, interview_type, interview_status):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "applications",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("job_id", UUID(as_uuid=True), nullable=False),
        sa.Column("candidate_id", UUID(as_uuid=True), nullable=False),
        sa.Column("status", application_status, nullable=False, server_default="submitted"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_applications_job_id", "applications", ["job_id"])
    op.create_index("idx_applications_candidate_id", "applications", ["candidate_id"])

    op.create_table(
        "interviews",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "application_id",
            UUID(as_uuid=True),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("job_id", UUID(as_uuid=True), nullable=False),
        sa.Column("candidate_id", UUID(as_uuid=True), nullable=False),
        sa.Column("interviewer_id", UUID(as_uuid=True), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("interview_type", interview_type, nullable=False),
        sa.Column("status", interview_status, nullable=False, server_default="scheduled"),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("meeting_link", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("feedback", sa.JSON, nullable=True),
        sa.Column("application_prior_status", application_status, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("duration_minutes > 0", name="ck_interviews_duration_positive"),
    )
    op.create_index("idx_interviews_scheduled", "interviews", ["scheduled_at"])
    op.create_index("idx_interviews_interviewer_window", "interviews", ["interviewer_id", "scheduled_at", "ends_at"])
    op.create_index("idx_interviews_candidate_id", "interviews", ["candidate_id"])
    op.create_index("idx_interviews_job_id", "interviews", ["job_id"])
    op.create_index("idx_interviews_status", "interviews", ["status"])
    op.create_index(
        "uq_interviews_active_application",
        "interviews",
        ["application_id"],
        unique=True,
        postgresql_where=sa.text(_ACTIVE_SQL),
        sqlite_where=sa.text(_ACTIVE_SQL),
    )

    op.create_table(
        "interview_slots",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("day_of_week", sa.Integer, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("is_recurring", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("effective_from", sa.Date, nullable=False),
        sa.Column("effective_until", sa.Date, nullable=True),
        sa.Column("max_interviews_per_slot", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_interview_slots_day_of_week"),
        sa.CheckConstraint("end_time > start_time", name="ck_interview_slots_time_range"),
        sa.CheckConstraint("max_interviews_per_slot >= 1", name="ck_interview_slots_capacity"),
    )
    op.create_index("ix_interview_slots_user_id", "interview_slots", ["user_id"])
    op.create_index("idx_interview_slots_effective", "interview_slots", ["effective_from", "effective_until"])

    op.create_table(
        "interview_reminders",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "interview_id",
            UUID(as_uuid=True),
            sa.ForeignKey("interviews.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reminder_type", sa.String(50), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("interview_id", "reminder_type", name="uq_interview_reminders_kind"),
    )
    op.create_index("ix_interview_reminders_interview_id", "interview_reminders", ["interview_id"])


def downgrade() -> None:
    op.drop_index("ix_interview_reminders_interview_id", table_name="interview_reminders")
    op.drop_table("interview_reminders")
    op.drop_index("idx_interview_slots_effective", table_name="interview_slots")
    op.drop_index("ix_interview_slots_user_id", table_name="interview_slots")
    op.drop_table("interview_slots")
    op.drop_index("uq_interviews_active_application", table_name="interviews")
    op.drop_index("idx_interviews_status", table_name="interviews")
    op.drop_index("idx_interviews_job_id", table_name="interviews")
    op.drop_index("idx_interviews_candidate_id", table_name="interviews")
    op.drop_index("idx_interviews_interviewer_window", table_name="interviews")
    op.drop_index("idx_interviews_scheduled", table_name="interviews")
    op.drop_table("interviews")
    op.drop_index("idx_applications_candidate_id", table_name="applications")
    op.drop_index("idx_applications_job_id", table_name="applications")
    op.drop_table("applications")

    bind = op.get_bind()
    for enum_type in (interview_status, interview_type, application_status):
        enum_type.drop(bind, checkfirst=True)
