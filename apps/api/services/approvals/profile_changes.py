"""
Profile change requests.

Athletes cannot edit verified profile fields directly; they file a request
with a supporting document and an official reviews it. On approval the
request row and the user's profile are updated in the same transaction.
"""
import json
import logging
from datetime import date
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from sqlalchemy import Date, DateTime, Integer, JSON, String, Text

from core.database import query_one, sql
from core.exceptions import NotFoundError, ValidationError
from core.permissions import Permission, Role
from core.transaction import TransactionClient
from services.approvals._common import ApprovalWorkflow, utcnow
from services.audit_logger import AuditAction

logger = logging.getLogger(__name__)


class ChangeRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# request key -> (users column, bind type)
PROFILE_FIELDS = {
    "athleteType": ("athlete_type", Text()),
    "schoolClub": ("school_club", Text()),
    "dateOfBirth": ("date_of_birth", Date()),
    "nationalRanking": ("national_ranking", Integer()),
    "district": ("district", Text()),
    "trainingPlace": ("training_place", Text()),
}

_INSERT_REQUEST = sql(
    """
    INSERT INTO profile_change_requests
        (id, user_id, requested_changes, reason, document_path, document_name,
         document_size, document_mime_type, status, created_at)
    VALUES
        (:id, :user_id, :requested_changes, :reason, :document_path, :document_name,
         :document_size, :document_mime_type, :status, :created_at)
    """,
    requested_changes=JSON(),
    document_name=String(),
    document_size=Integer(),
    document_mime_type=String(),
    created_at=DateTime(timezone=True),
)

_SELECT_REQUEST = sql(
    "SELECT id, user_id, status, requested_changes FROM profile_change_requests WHERE id = :id"
).columns(requested_changes=JSON())

_REVIEW_REQUEST = sql(
    """
    UPDATE profile_change_requests
    SET status = :status, reviewed_by = :reviewer_id, reviewed_at = :now, review_notes = :notes
    WHERE id = :id AND status = :expected
    """,
    now=DateTime(timezone=True),
    notes=String(),
)


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key == "dateOfBirth":
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            raise ValidationError("dateOfBirth must be an ISO date", field="dateOfBirth")
    if key == "nationalRanking":
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError("nationalRanking must be an integer", field="nationalRanking")
    return str(value)


def normalize_changes(requested_changes: Any) -> Dict[str, Any]:
    """Validate a change bag: a JSON object (or its string form) over the editable fields only."""
    if isinstance(requested_changes, str):
        try:
            requested_changes = json.loads(requested_changes)
        except ValueError:
            raise ValidationError("Invalid requested changes format", field="requestedChanges")
    if not isinstance(requested_changes, Mapping) or not requested_changes:
        raise ValidationError("Requested changes are required", field="requestedChanges")
    unknown = sorted(set(requested_changes) - set(PROFILE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be changed: {', '.join(unknown)}", field="requestedChanges")
    for key, value in requested_changes.items():
        _coerce(key, value)
    return dict(requested_changes)


def build_profile_update(user_id: str, changes: Mapping[str, Any]):
    """UPDATE users for the approved keys. Column names come from PROFILE_FIELDS only."""
    assignments = []
    params: Dict[str, Any] = {"user_id": user_id, "now": utcnow()}
    bind_types = {"now": DateTime(timezone=True)}
    for key, (column, type_) in PROFILE_FIELDS.items():
        if key in changes:
            assignments.append(f"{column} = :{column}")
            params[column] = _coerce(key, changes[key])
            bind_types[column] = type_
    if not assignments:
        return None, params
    statement = sql(
        f"UPDATE users SET {', '.join(assignments)}, updated_at = :now WHERE id = :user_id",
        **bind_types,
    )
    return statement, params


class ProfileChangeWorkflow(ApprovalWorkflow):
    resource_type = "profile_change_request"

    async def submit(
        self,
        requested_changes: Any,
        reason: str,
        document_path: str,
        *,
        document_name: Optional[str] = None,
        document_size: Optional[int] = None,
        document_mime_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        actor = await self.guard.require_permission(Permission.REQUEST_PROFILE_CHANGE, resource_type=self.resource_type)
        if not reason or not reason.strip():
            raise ValidationError("Reason and requested changes are required", field="reason")
        if not document_path:
            raise ValidationError("Supporting document is required for profile changes", field="document")
        changes = normalize_changes(requested_changes)

        request_id = str(uuid4())

        async def unit(tx: TransactionClient):
            await tx.query(_INSERT_REQUEST, {
                "id": request_id,
                "user_id": actor.id,
                "requested_changes": changes,
                "reason": reason,
                "document_path": document_path,
                "document_name": document_name,
                "document_size": document_size,
                "document_mime_type": document_mime_type,
                "status": ChangeRequestStatus.PENDING.value,
                "created_at": utcnow(),
            })

        await self._run(unit, "create-profile-change-request", actor=actor, resource_id=request_id)

        self._audit(
            actor,
            AuditAction.RESOURCE_CREATED,
            request_id,
            after={"status": ChangeRequestStatus.PENDING.value, "fields": sorted(changes)},
        )
        await self.notifier.notify_role(
            Role.OFFICIAL,
            "profile_change_request",
            "New Profile Change Request",
            f"{actor.name or 'An athlete'} has requested to update their profile.",
            f"/official/profile-change-requests/{request_id}",
        )
        return {"id": request_id, "status": ChangeRequestStatus.PENDING.value, "requested_changes": changes}

    async def review(self, request_id: str, status: str, review_notes: Optional[str] = None) -> Dict[str, Any]:
        actor = await self.guard.require_permission(
            Permission.APPROVE_REGISTRATION, resource_type=self.resource_type, resource_id=request_id
        )
        if status not in (ChangeRequestStatus.APPROVED.value, ChangeRequestStatus.REJECTED.value):
            raise ValidationError("Valid status (approved/rejected) is required", field="status")
        status = ChangeRequestStatus(status)

        change_request = await query_one(_SELECT_REQUEST, {"id": request_id}, engine=self.engine)
        if change_request is None:
            raise NotFoundError("Profile change request", request_id)
        self._require_status(
            actor, request_id, change_request["status"], (ChangeRequestStatus.PENDING.value,), "review profile change request"
        )

        changes = change_request["requested_changes"] or {}
        if isinstance(changes, str):
            changes = json.loads(changes)
        user_id = change_request["user_id"]

        async def unit(tx: TransactionClient):
            await self._transition(tx, _REVIEW_REQUEST, {
                "id": request_id,
                "status": status.value,
                "reviewer_id": actor.id,
                "notes": review_notes,
                "now": utcnow(),
            }, expected=ChangeRequestStatus.PENDING.value)

            if status == ChangeRequestStatus.APPROVED:
                statement, params = build_profile_update(user_id, changes)
                if statement is not None:
                    await tx.query(statement, params)

        await self._run(unit, "review-profile-change", actor=actor, resource_id=request_id)

        self._audit(
            actor,
            AuditAction.APPROVAL_GRANTED if status == ChangeRequestStatus.APPROVED else AuditAction.APPROVAL_DENIED,
            request_id,
            denial_reason=review_notes if status == ChangeRequestStatus.REJECTED else None,
            before={"status": ChangeRequestStatus.PENDING.value},
            after={"status": status.value},
        )
        if status == ChangeRequestStatus.APPROVED:
            await self._notify(
                user_id,
                "profile_change_approved",
                "Profile Updated",
                "Your profile change request has been approved and your profile has been updated.",
                "/profile",
            )
        else:
            await self._notify(
                user_id,
                "profile_change_rejected",
                "Profile Change Rejected",
                "Your profile change request has been rejected." + (f" Reason: {review_notes}" if review_notes else ""),
                "/profile",
            )
        return {"id": request_id, "status": status.value, "user_id": user_id}
