"""
Document-driven profile verification.

A user's `profile_verified` flag is an aggregate over *all* of their
document submissions, re-derived from the full set on every review:

    verified  <=>  N >= 1 and every one of the N documents is approved

Anything else (a pending document, any rejection) leaves the user
unverified and `profile_pending_verification`, so a rejection can be cured
by resubmitting. An earlier decision may be revised (an approval revoked,
a rejection overturned); re-reviewing into the same status is an invalid
transition. The review and the recomputation share one transaction.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, String

from core.database import query_one, sql
from core.exceptions import AuthorizationError, NotFoundError, ValidationError
from core.permissions import Permission, Role
from core.transaction import TransactionClient
from services.approvals._common import ApprovalWorkflow, snapshot, utcnow
from services.audit_logger import AuditAction

logger = logging.getLogger(__name__)


class DocumentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# Official accounts are provisioned by an admin, never through a document.
SELF_ASSIGNABLE_ROLES = frozenset({Role.ATHLETE, Role.COACH, Role.SPECIALIST})

_USER_FLAGS = ("profile_verified", "profile_pending_verification")

_INSERT_DOCUMENT = sql(
    """
    INSERT INTO document_submissions
        (id, user_id, role, document_type, file_path, original_filename, file_size, mime_type, status, submitted_at)
    VALUES
        (:id, :user_id, :role, :document_type, :file_path, :original_filename, :file_size, :mime_type, :status, :submitted_at)
    """,
    original_filename=String(),
    file_size=Integer(),
    mime_type=String(),
    submitted_at=DateTime(timezone=True),
)

_MARK_PENDING = sql(
    "UPDATE users SET profile_pending_verification = :yes, updated_at = :now WHERE id = :user_id",
    yes=Boolean(),
    now=DateTime(timezone=True),
)

_SELECT_DOCUMENT = "SELECT id, user_id, status, role, document_type FROM document_submissions WHERE id = :id"

_REVIEW_DOCUMENT = sql(
    """
    UPDATE document_submissions
    SET status = :status,
        rejection_reason = :reason,
        approved_by = :reviewer_id,
        approved_at = :now
    WHERE id = :id AND status = :expected
    """,
    reason=String(),
    now=DateTime(timezone=True),
)

_DOCUMENT_STATS = """
    SELECT COUNT(*) AS total,
           COALESCE(SUM(CASE WHEN status = 'approved' THEN 1 ELSE 0 END), 0) AS approved,
           COALESCE(SUM(CASE WHEN status = 'rejected' THEN 1 ELSE 0 END), 0) AS rejected
    FROM document_submissions
    WHERE user_id = :user_id
"""

_SELECT_USER_FLAGS = "SELECT id, profile_verified, profile_pending_verification FROM users WHERE id = :user_id"

_SET_USER_FLAGS = sql(
    """
    UPDATE users
    SET profile_verified = :verified,
        profile_pending_verification = :pending,
        email_verified = (email_verified OR :verified),
        updated_at = :now
    WHERE id = :user_id
    """,
    verified=Boolean(),
    pending=Boolean(),
    now=DateTime(timezone=True),
)


def derive_verification(total: int, approved: int) -> bool:
    """True iff at least one document exists and all of them are approved."""
    return int(total) >= 1 and int(approved) == int(total)


class DocumentVerificationWorkflow(ApprovalWorkflow):
    resource_type = "document_submission"

    async def submit(
        self,
        role: str,
        document_type: str,
        file_path: str,
        original_filename: Optional[str] = None,
        file_size: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        actor = await self.guard.require_permission(
            Permission.SUBMIT_VERIFICATION_DOCUMENT, resource_type=self.resource_type
        )
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}", field="role")
        if role not in SELF_ASSIGNABLE_ROLES:
            reason = f"Role '{role.value}' cannot be requested through document submission"
            self._deny(actor, AuditAction.PERMISSION_DENIED, None, reason, AuthorizationError(reason))
        role = role.value
        if not document_type or not file_path:
            raise ValidationError("documentType and filePath are required")

        document_id = str(uuid4())
        now = utcnow()

        async def unit(tx: TransactionClient):
            await tx.query(_INSERT_DOCUMENT, {
                "id": document_id,
                "user_id": actor.id,
                "role": role,
                "document_type": document_type,
                "file_path": file_path,
                "original_filename": original_filename,
                "file_size": file_size,
                "mime_type": mime_type,
                "status": DocumentStatus.PENDING.value,
                "submitted_at": now,
            })
            await tx.query(_MARK_PENDING, {"user_id": actor.id, "yes": True, "now": now})

        await self._run(unit, "submit-document", actor=actor, resource_id=document_id)

        self._audit(
            actor,
            AuditAction.RESOURCE_CREATED,
            document_id,
            after={"status": DocumentStatus.PENDING.value, "role": role, "document_type": document_type},
        )
        await self.notifier.notify_role(
            Role.OFFICIAL,
            "document_submitted",
            "New Verification Document",
            f"A {role} has submitted a {document_type} document for review.",
            "/official/documents",
        )
        return {"id": document_id, "status": DocumentStatus.PENDING.value, "role": role, "document_type": document_type}

    async def review(self, document_id: str, action: str, reason: Optional[str] = None) -> Dict[str, Any]:
        actor = await self.guard.require_permission(
            Permission.VERIFY_DOCUMENTS, resource_type=self.resource_type, resource_id=document_id
        )
        try:
            action = ReviewAction(action)
        except ValueError:
            raise ValidationError("Invalid action", field="action")
        if action == ReviewAction.REJECT and not (reason and reason.strip()):
            raise ValidationError("Rejection reason is required", field="reason")

        document = await query_one(_SELECT_DOCUMENT, {"id": document_id}, engine=self.engine)
        if document is None:
            raise NotFoundError("Document", document_id)
        new_status = DocumentStatus.APPROVED if action == ReviewAction.APPROVE else DocumentStatus.REJECTED
        previous_status = document["status"]
        # A decision can be revised, not repeated.
        self._require_status(
            actor,
            document_id,
            previous_status,
            (s.value for s in DocumentStatus if s != new_status),
            f"{action.value} document",
        )
        user_id = document["user_id"]

        async def unit(tx: TransactionClient):
            await self._transition(tx, _REVIEW_DOCUMENT, {
                "id": document_id,
                "status": new_status.value,
                "reason": reason if new_status == DocumentStatus.REJECTED else None,
                "reviewer_id": actor.id,
                "now": utcnow(),
            }, expected=previous_status)

            user_before = await tx.query_one(_SELECT_USER_FLAGS, {"user_id": user_id})
            stats = await tx.query_one(_DOCUMENT_STATS, {"user_id": user_id})
            verified = derive_verification(stats["total"], stats["approved"])
            await tx.query(_SET_USER_FLAGS, {
                "user_id": user_id,
                "verified": verified,
                "pending": not verified,
                "now": utcnow(),
            })
            return user_before, {
                "profile_verified": verified,
                "profile_pending_verification": not verified,
            }, stats

        user_before, user_after, stats = await self._run(
            unit, f"{action.value}-document", actor=actor, resource_id=document_id
        )

        self._audit(
            actor,
            AuditAction.VERIFICATION_COMPLETED if new_status == DocumentStatus.APPROVED else AuditAction.APPROVAL_DENIED,
            document_id,
            denial_reason=reason if new_status == DocumentStatus.REJECTED else None,
            before={"status": previous_status},
            after={"status": new_status.value},
        )
        before_flags = snapshot(user_before, *_USER_FLAGS, booleans=_USER_FLAGS)
        if before_flags != user_after:
            self._audit(
                actor,
                AuditAction.STATUS_CHANGE,
                user_id,
                resource_type="user_verification",
                before=before_flags,
                after=user_after,
            )

        if new_status == DocumentStatus.APPROVED:
            message = f"Your {document['document_type']} document has been approved."
            if user_after["profile_verified"]:
                message += " Your profile is now verified."
        else:
            message = f"Your {document['document_type']} document was rejected: {reason}. Please resubmit."
        await self._notify(user_id, f"document_{new_status.value}", f"Document {new_status.value.capitalize()}", message, "/verification")

        return {
            "id": document_id,
            "status": new_status.value,
            "user_id": user_id,
            "profile_verified": user_after["profile_verified"],
            "documents": {
                "total": int(stats["total"]),
                "approved": int(stats["approved"]),
                "rejected": int(stats["rejected"]),
            },
        }
