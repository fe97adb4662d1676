"""
Registration approval / rejection by officials.

The official must act under their own id. Approval reads the latest
submitted document's role (never `official`; those accounts are provisioned
by an admin) inside the same transaction as the user update,
so a role change racing the approval cannot be lost.

Flags are independently settable: a rejected user can be approved later
after resubmitting documents.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, String

from core.database import sql
from core.exceptions import NotFoundError, ValidationError
from core.permissions import Permission, Role
from core.transaction import TransactionClient
from services.approvals._common import ApprovalWorkflow, snapshot, utcnow
from services.audit_logger import AuditAction

logger = logging.getLogger(__name__)

_FLAGS = ("registration_verified", "registration_rejected", "profile_verified")

_SELECT_USER = """
    SELECT id, role, registration_verified, registration_rejected, profile_verified
    FROM users
    WHERE id = :user_id
"""

_LATEST_DOCUMENT_ROLE = """
    SELECT role FROM document_submissions
    WHERE user_id = :user_id AND role <> :official
    ORDER BY submitted_at DESC
    LIMIT 1
"""

_APPROVE_USER = sql(
    """
    UPDATE users
    SET registration_verified = :yes,
        registration_rejected = :no,
        email_verified = :yes,
        rejection_reason = NULL,
        verified_by = :official_id,
        verified_at = :now,
        profile_verified = :yes,
        profile_pending_verification = :no,
        role = COALESCE(:document_role, role),
        updated_at = :now
    WHERE id = :user_id
    """,
    yes=Boolean(),
    no=Boolean(),
    now=DateTime(timezone=True),
    document_role=String(),
)

_REJECT_USER = sql(
    """
    UPDATE users
    SET registration_verified = :no,
        registration_rejected = :yes,
        rejection_reason = :reason,
        verified_by = :official_id,
        verified_at = :now,
        profile_verified = :no,
        profile_pending_verification = :no,
        updated_at = :now
    WHERE id = :user_id
    """,
    yes=Boolean(),
    no=Boolean(),
    now=DateTime(timezone=True),
)


class RegistrationWorkflow(ApprovalWorkflow):
    resource_type = "registration"

    async def approve(self, user_id: str, official_id: str) -> Dict[str, Any]:
        actor = await self.guard.require_permission(
            Permission.APPROVE_REGISTRATION, resource_type=self.resource_type, resource_id=user_id
        )
        self.guard.require_self(
            actor,
            official_id,
            resource_type=self.resource_type,
            resource_id=user_id,
            action=AuditAction.APPROVAL_DENIED,
            reason="Official ID mismatch",
            detail="You can only approve registrations with your own official ID",
        )
        if not user_id:
            raise ValidationError("userId is required", field="user_id")

        async def unit(tx: TransactionClient):
            before = await tx.query_one(_SELECT_USER, {"user_id": user_id})
            if before is None:
                raise NotFoundError("User", user_id)
            document = await tx.query_one(
                _LATEST_DOCUMENT_ROLE, {"user_id": user_id, "official": Role.OFFICIAL.value}
            )
            await tx.query(_APPROVE_USER, {
                "user_id": user_id,
                "official_id": actor.id,
                "document_role": document["role"] if document else None,
                "now": utcnow(),
                "yes": True,
                "no": False,
            })
            after = await tx.query_one(_SELECT_USER, {"user_id": user_id})
            return before, after

        before, after = await self._run(unit, "approve-registration", actor=actor, resource_id=user_id)

        self._audit(
            actor,
            AuditAction.APPROVAL_GRANTED,
            user_id,
            before=snapshot(before, *_FLAGS, "role", booleans=_FLAGS),
            after=snapshot(after, *_FLAGS, "role", booleans=_FLAGS),
        )
        if before["role"] != after["role"]:
            self._audit(
                actor,
                AuditAction.ROLE_ASSIGNMENT,
                user_id,
                before={"role": before["role"]},
                after={"role": after["role"]},
            )
        await self._notify(
            user_id,
            "registration_approved",
            "Registration Approved",
            "Your registration has been approved. Your account is now active.",
            "/dashboard",
        )
        logger.info("Registration approved", extra={"extra_fields": {"user_id": user_id}})
        return snapshot(after, "id", *_FLAGS, "role", booleans=_FLAGS)

    async def reject(self, user_id: str, official_id: str, reason: Optional[str]) -> Dict[str, Any]:
        actor = await self.guard.require_permission(
            Permission.REJECT_REGISTRATION, resource_type=self.resource_type, resource_id=user_id
        )
        self.guard.require_self(
            actor,
            official_id,
            resource_type=self.resource_type,
            resource_id=user_id,
            action=AuditAction.APPROVAL_DENIED,
            reason="Official ID mismatch",
            detail="You can only reject registrations with your own official ID",
        )
        if not user_id or not reason or not reason.strip():
            raise ValidationError("userId, officialId, and reason are required", field="reason")

        async def unit(tx: TransactionClient):
            before = await tx.query_one(_SELECT_USER, {"user_id": user_id})
            if before is None:
                raise NotFoundError("User", user_id)
            await tx.query(_REJECT_USER, {
                "user_id": user_id,
                "official_id": actor.id,
                "reason": reason,
                "now": utcnow(),
                "yes": True,
                "no": False,
            })
            after = await tx.query_one(_SELECT_USER, {"user_id": user_id})
            return before, after

        before, after = await self._run(unit, "reject-registration", actor=actor, resource_id=user_id)

        self._audit(
            actor,
            AuditAction.APPROVAL_DENIED,
            user_id,
            denial_reason=reason,
            before=snapshot(before, *_FLAGS, booleans=_FLAGS),
            after=snapshot(after, *_FLAGS, booleans=_FLAGS),
        )
        await self._notify(
            user_id,
            "registration_rejected",
            "Registration Rejected",
            f"Your registration was rejected: {reason}",
            "/verification",
        )
        return snapshot(after, "id", *_FLAGS, "role", booleans=_FLAGS)
