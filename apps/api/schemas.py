"""
Request and response models for the approval endpoints.

Request bodies accept the camelCase keys the web client sends as well as
snake_case field names. Required-ness of decision inputs (reasons, notes)
is enforced by the workflows so that the error surfaces as a 400 with a
specific error code rather than a generic 422.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Registration ---

class RegistrationApproveRequest(CamelModel):
    user_id: str = Field(alias="userId")
    official_id: str = Field(alias="officialId")


class RegistrationRejectRequest(CamelModel):
    user_id: str = Field(alias="userId")
    official_id: str = Field(alias="officialId")
    reason: Optional[str] = None


class RegistrationResponse(BaseModel):
    id: str
    registration_verified: bool
    registration_rejected: bool
    profile_verified: bool
    role: Optional[str] = None


# --- Documents ---

class DocumentSubmitRequest(CamelModel):
    role: str
    document_type: str = Field(alias="documentType")
    file_path: str = Field(alias="filePath")
    original_filename: Optional[str] = Field(default=None, alias="originalFilename")
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


class DocumentReviewRequest(CamelModel):
    action: Literal["approve", "reject"]
    reason: Optional[str] = None


# --- Medical leave ---

class MedicalLeaveCreateRequest(BaseModel):
    coach_id: str
    leave_type: str
    reason: str
    start_date: date
    end_date: date
    medical_certificate_path: Optional[str] = None
    medical_certificate_name: Optional[str] = None
    medical_certificate_size: Optional[int] = None


class SpecialistReviewRequest(BaseModel):
    specialist_review: str
    specialist_recommendation: Literal["approve", "reject"]


class CoachDecisionRequest(BaseModel):
    coach_decision: Literal["stop_training", "continue_modified", "continue_normal"]
    coach_notes: Optional[str] = None


# --- Profile change requests ---

class ProfileChangeCreateRequest(CamelModel):
    requested_changes: Dict[str, Any] = Field(alias="requestedChanges")
    reason: str
    document_path: str = Field(alias="documentPath")
    document_name: Optional[str] = Field(default=None, alias="documentName")
    document_size: Optional[int] = Field(default=None, alias="documentSize")
    document_mime_type: Optional[str] = Field(default=None, alias="documentMimeType")


class ProfileChangeReviewRequest(CamelModel):
    status: Literal["approved", "rejected"]
    review_notes: Optional[str] = Field(default=None, alias="reviewNotes")


# --- Sport registrations ---

class SportRegistrationCreateRequest(CamelModel):
    athlete_id: str = Field(alias="athleteId")
    coach_id: str = Field(alias="coachId")
    sport: str
    priority: int


class SportRegistrationDecisionRequest(BaseModel):
    status: Literal["approved", "rejected"]
    notes: Optional[str] = None


# --- Audit logs ---

class AuditLogResponse(BaseModel):
    id: str
    timestamp: datetime
    actor_id: str
    actor_role: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    result: str
    denial_reason: Optional[str] = None
    status_before: Optional[Dict[str, Any]] = None
    status_after: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    error_message: Optional[str] = None


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    count: int
