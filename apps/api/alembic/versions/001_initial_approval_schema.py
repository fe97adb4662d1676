"""initial_approval_schema

Revision ID: 001_initial_approval
Revises:
Create Date: 2026-10-19

Creates the users table, the four approval entity tables, notifications,
the relationship tables used by authorization predicates, and the
append-only audit_logs table with its query indexes.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001_initial_approval"
down_revision = None
branch_labels = None
depends_on = None

ID = sa.String(36)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", ID, primary_key=True),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("registration_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("registration_rejected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("verified_by", ID, nullable=True),
        _ts("verified_at"),
        sa.Column("profile_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("profile_pending_verification", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sport", sa.Text(), nullable=True),
        sa.Column("athlete_type", sa.Text(), nullable=True),
        sa.Column("school_club", sa.Text(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("national_ranking", sa.Integer(), nullable=True),
        sa.Column("district", sa.Text(), nullable=True),
        sa.Column("training_place", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        _ts("updated_at"),
    )
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "document_submissions",
        sa.Column("id", ID, primary_key=True),
        sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("document_type", sa.Text(), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("original_filename", sa.Text(), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("approved_by", ID, nullable=True),
        _ts("approved_at"),
        _ts("submitted_at", nullable=False),
    )
    op.create_index("ix_document_submissions_user_id", "document_submissions", ["user_id"])

    op.create_table(
        "medical_leave_requests",
        sa.Column("id", ID, primary_key=True),
        sa.Column("athlete_id", ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("coach_id", ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("specialist_id", ID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("leave_type", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("medical_certificate_path", sa.Text(), nullable=True),
        sa.Column("medical_certificate_name", sa.Text(), nullable=True),
        sa.Column("medical_certificate_size", sa.Integer(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending_specialist_review"),
        sa.Column("specialist_review", sa.Text(), nullable=True),
        sa.Column("specialist_recommendation", sa.Text(), nullable=True),
        _ts("specialist_reviewed_at"),
        sa.Column("coach_decision", sa.Text(), nullable=True),
        sa.Column("coach_notes", sa.Text(), nullable=True),
        _ts("coach_decided_at"),
        _ts("created_at", nullable=False),
        _ts("updated_at"),
    )
    op.create_index("ix_medical_leave_requests_athlete_id", "medical_leave_requests", ["athlete_id"])
    op.create_index("ix_medical_leave_requests_coach_id", "medical_leave_requests", ["coach_id"])

    op.create_table(
        "profile_change_requests",
        sa.Column("id", ID, primary_key=True),
        sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("requested_changes", sa.JSON(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("document_path", sa.Text(), nullable=False),
        sa.Column("document_name", sa.Text(), nullable=True),
        sa.Column("document_size", sa.Integer(), nullable=True),
        sa.Column("document_mime_type", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", ID, nullable=True),
        _ts("reviewed_at"),
        sa.Column("review_notes", sa.Text(), nullable=True),
        _ts("created_at", nullable=False),
    )
    op.create_index("ix_profile_change_requests_user_id", "profile_change_requests", ["user_id"])

    op.create_table(
        "sport_registrations",
        sa.Column("id", ID, primary_key=True),
        sa.Column("athlete_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("coach_id", ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sport", sa.Text(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("decided_at"),
        _ts("created_at", nullable=False),
    )
    op.create_index("ix_sport_registrations_athlete_id", "sport_registrations", ["athlete_id"])
    op.create_index("ix_sport_registrations_coach_id", "sport_registrations", ["coach_id"])

    op.create_table(
        "notifications",
        sa.Column("id", ID, primary_key=True),
        sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_url", sa.Text(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at", nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "training_plans",
        sa.Column("id", ID, primary_key=True),
        sa.Column("coach_id", ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_training_plans_coach_id", "training_plans", ["coach_id"])

    op.create_table(
        "training_plan_athletes",
        sa.Column("plan_id", ID, sa.ForeignKey("training_plans.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("athlete_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "consultations",
        sa.Column("id", ID, primary_key=True),
        sa.Column("specialist_id", ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("athlete_id", ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_consultations_specialist_id", "consultations", ["specialist_id"])
    op.create_index("ix_consultations_athlete_id", "consultations", ["athlete_id"])

    # Append-only: no update or delete path exists in application code.
    op.create_table(
        "audit_logs",
        sa.Column("id", ID, primary_key=True),
        _ts("timestamp", nullable=False),
        sa.Column("actor_id", sa.Text(), nullable=False),
        sa.Column("actor_role", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("resource_type", sa.Text(), nullable=False),
        sa.Column("resource_id", sa.Text(), nullable=True),
        sa.Column("result", sa.Text(), nullable=False),
        sa.Column("denial_reason", sa.Text(), nullable=True),
        sa.Column("status_before", sa.JSON(), nullable=True),
        sa.Column("status_after", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_audit_logs_timestamp", "audit_logs", ["timestamp"])
    op.create_index("ix_audit_logs_actor_timestamp", "audit_logs", ["actor_id", "timestamp"])
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource_type", "resource_id"])
    op.create_index("ix_audit_logs_result_timestamp", "audit_logs", ["result", "timestamp"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "consultations",
        "training_plan_athletes",
        "training_plans",
        "notifications",
        "sport_registrations",
        "profile_change_requests",
        "medical_leave_requests",
        "document_submissions",
        "users",
    ):
        op.drop_table(table)
