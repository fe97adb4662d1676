"""
Declarative schema for the tables the approval core reads and writes.

Runtime access goes through parameterized text queries (core.database);
these classes exist for DDL, migrations and test fixtures. Ids are UUID
strings generated by the application so the same statements run on
PostgreSQL and SQLite.
"""
from sqlalchemy import Column, Boolean, Date, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.sql import func
from core.database import Base

ID = String(36)


class User(Base):
    __tablename__ = "users"

    id = Column(ID, primary_key=True)
    email = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=True)
    role = Column(Text, nullable=False, default="athlete")  # athlete | coach | specialist | official

    # --- REGISTRATION (official approval) ---
    # The two flags are independently settable: a rejected user may be approved later.
    email_verified = Column(Boolean, nullable=False, default=False)
    registration_verified = Column(Boolean, nullable=False, default=False)
    registration_rejected = Column(Boolean, nullable=False, default=False)
    rejection_reason = Column(Text, nullable=True)
    verified_by = Column(ID, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    # --- DOCUMENT-DRIVEN VERIFICATION ---
    # Derived from the full set of document_submissions on every review.
    profile_verified = Column(Boolean, nullable=False, default=False)
    profile_pending_verification = Column(Boolean, nullable=False, default=False)

    # --- PROFILE (editable through profile change requests) ---
    sport = Column(Text, nullable=True)
    athlete_type = Column(Text, nullable=True)
    school_club = Column(Text, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    national_ranking = Column(Integer, nullable=True)
    district = Column(Text, nullable=True)
    training_place = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_users_role", "role"),
    )


class DocumentSubmission(Base):
    __tablename__ = "document_submissions"

    id = Column(ID, primary_key=True)
    user_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Text, nullable=False)  # role claimed at submission time
    document_type = Column(Text, nullable=False)
    file_path = Column(Text, nullable=False)
    original_filename = Column(Text, nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending")  # pending | approved | rejected
    rejection_reason = Column(Text, nullable=True)
    approved_by = Column(ID, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False)


class MedicalLeaveRequest(Base):
    __tablename__ = "medical_leave_requests"

    id = Column(ID, primary_key=True)
    athlete_id = Column(ID, ForeignKey("users.id"), nullable=False, index=True)
    coach_id = Column(ID, ForeignKey("users.id"), nullable=False, index=True)
    specialist_id = Column(ID, ForeignKey("users.id"), nullable=True)
    leave_type = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    duration_days = Column(Integer, nullable=False)
    medical_certificate_path = Column(Text, nullable=True)
    medical_certificate_name = Column(Text, nullable=True)
    medical_certificate_size = Column(Integer, nullable=True)
    # pending_specialist_review -> rejected | pending_coach_decision -> approved
    status = Column(Text, nullable=False, default="pending_specialist_review")

    # Specialist review
    specialist_review = Column(Text, nullable=True)
    specialist_recommendation = Column(Text, nullable=True)  # approve | reject
    specialist_reviewed_at = Column(DateTime(timezone=True), nullable=True)

    # Coach decision
    coach_decision = Column(Text, nullable=True)  # stop_training | continue_modified | continue_normal
    coach_notes = Column(Text, nullable=True)
    coach_decided_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class ProfileChangeRequest(Base):
    __tablename__ = "profile_change_requests"

    id = Column(ID, primary_key=True)
    user_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    requested_changes = Column(JSON, nullable=False)
    reason = Column(Text, nullable=False)
    document_path = Column(Text, nullable=False)
    document_name = Column(Text, nullable=True)
    document_size = Column(Integer, nullable=True)
    document_mime_type = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending")  # pending | approved | rejected
    reviewed_by = Column(ID, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class SportRegistration(Base):
    __tablename__ = "sport_registrations"

    id = Column(ID, primary_key=True)
    athlete_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    coach_id = Column(ID, ForeignKey("users.id"), nullable=False, index=True)
    sport = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default="pending")  # pending | approved | rejected
    notes = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(ID, primary_key=True)
    user_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(Text, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class TrainingPlan(Base):
    __tablename__ = "training_plans"

    id = Column(ID, primary_key=True)
    coach_id = Column(ID, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TrainingPlanAthlete(Base):
    __tablename__ = "training_plan_athletes"

    plan_id = Column(ID, ForeignKey("training_plans.id", ondelete="CASCADE"), primary_key=True)
    athlete_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)


class Consultation(Base):
    __tablename__ = "consultations"

    id = Column(ID, primary_key=True)
    specialist_id = Column(ID, ForeignKey("users.id"), nullable=False, index=True)
    athlete_id = Column(ID, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AuditLog(Base):
    """
    Append-only audit trail.

    Never updated or deleted by application code. status_before/after hold
    small snapshots of the decision-relevant fields only.
    """
    __tablename__ = "audit_logs"

    id = Column(ID, primary_key=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    actor_id = Column(Text, nullable=False)
    actor_role = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    resource_type = Column(Text, nullable=False)
    resource_id = Column(Text, nullable=True)
    result = Column(Text, nullable=False)  # success | denied | error
    denial_reason = Column(Text, nullable=True)
    status_before = Column(JSON, nullable=True)
    status_after = Column(JSON, nullable=True)
    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_logs_timestamp", "timestamp"),
        Index("ix_audit_logs_actor_timestamp", "actor_id", "timestamp"),
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
        Index("ix_audit_logs_result_timestamp", "result", "timestamp"),
    )
