"""
Sport registrations: athlete applies, assigned coach decides.

    pending --(assigned coach)--> approved | rejected
    pending --(own athlete)-----> (deleted)

Only the registration's coach may decide and only its athlete may cancel,
and only while the registration is still pending.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String

from core.database import query_one, sql
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.permissions import Permission, Role
from core.transaction import TransactionClient
from services.approvals._common import ApprovalWorkflow, utcnow
from services.audit_logger import AuditAction

logger = logging.getLogger(__name__)


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


ACTIVE_STATES = (RegistrationStatus.PENDING.value, RegistrationStatus.APPROVED.value)

_SELECT_REGISTRATION = """
    SELECT id, athlete_id, coach_id, sport, priority, status
    FROM sport_registrations
    WHERE id = :id
"""

_ACTIVE_FOR_SPORT = """
    SELECT id FROM sport_registrations
    WHERE athlete_id = :athlete_id AND sport = :sport AND status IN (:pending, :approved)
    LIMIT 1
"""

_INSERT_REGISTRATION = sql(
    """
    INSERT INTO sport_registrations (id, athlete_id, coach_id, sport, priority, status, created_at)
    VALUES (:id, :athlete_id, :coach_id, :sport, :priority, :status, :created_at)
    """,
    priority=Integer(),
    created_at=DateTime(timezone=True),
)

_DECIDE = sql(
    """
    UPDATE sport_registrations
    SET status = :status, notes = :notes, decided_at = :now
    WHERE id = :id AND status = :expected AND coach_id = :coach_id
    """,
    notes=String(),
    now=DateTime(timezone=True),
)

_CANCEL = """
    DELETE FROM sport_registrations
    WHERE id = :id AND status = :expected AND athlete_id = :athlete_id
"""


class SportRegistrationWorkflow(ApprovalWorkflow):
    resource_type = "sport_registration"

    async def _load(self, registration_id: str) -> Dict[str, Any]:
        registration = await query_one(_SELECT_REGISTRATION, {"id": registration_id}, engine=self.engine)
        if registration is None:
            raise NotFoundError("Sport registration", registration_id)
        return registration

    async def register(self, athlete_id: str, coach_id: str, sport: str, priority: Any) -> Dict[str, Any]:
        actor = await self.guard.require_permission(Permission.APPLY_TO_OPPORTUNITY, resource_type=self.resource_type)
        if not athlete_id or not coach_id or not sport or priority in (None, ""):
            raise ValidationError("athleteId, coachId, sport, and priority are required")
        self.guard.require_self(
            actor,
            athlete_id,
            resource_type=self.resource_type,
            reason="Athlete ID mismatch",
            detail="You can only register yourself",
        )
        try:
            priority = int(priority)
        except (TypeError, ValueError):
            raise ValidationError("priority must be an integer", field="priority")
        if priority < 1:
            raise ValidationError("priority must be positive", field="priority")

        coach = await query_one("SELECT id, role FROM users WHERE id = :id", {"id": coach_id}, engine=self.engine)
        if coach is None or coach["role"] != Role.COACH.value:
            raise NotFoundError("Coach", coach_id)

        registration_id = str(uuid4())

        async def unit(tx: TransactionClient):
            existing = await tx.query_one(_ACTIVE_FOR_SPORT, {
                "athlete_id": actor.id,
                "sport": sport,
                "pending": RegistrationStatus.PENDING.value,
                "approved": RegistrationStatus.APPROVED.value,
            })
            if existing is not None:
                raise ConflictError("Already registered for this sport")
            await tx.query(_INSERT_REGISTRATION, {
                "id": registration_id,
                "athlete_id": actor.id,
                "coach_id": coach_id,
                "sport": sport,
                "priority": priority,
                "status": RegistrationStatus.PENDING.value,
                "created_at": utcnow(),
            })

        await self._run(unit, "create-sport-registration", actor=actor, resource_id=registration_id)

        self._audit(
            actor,
            AuditAction.RESOURCE_CREATED,
            registration_id,
            after={"status": RegistrationStatus.PENDING.value, "sport": sport},
        )
        await self._notify(
            coach_id,
            "registration_pending",
            "New Sport Registration",
            f"An athlete has registered for {sport} and is awaiting your approval.",
            "/coach/sport-registrations",
        )
        return {
            "id": registration_id,
            "athlete_id": actor.id,
            "coach_id": coach_id,
            "sport": sport,
            "priority": priority,
            "status": RegistrationStatus.PENDING.value,
        }

    async def decide(self, registration_id: str, status: str, notes: Optional[str] = None) -> Dict[str, Any]:
        actor = await self.guard.require_permission(
            Permission.APPROVE_SPORT_REGISTRATION, resource_type=self.resource_type, resource_id=registration_id
        )
        if status not in (RegistrationStatus.APPROVED.value, RegistrationStatus.REJECTED.value):
            raise ValidationError("Valid status (approved/rejected) is required", field="status")
        status = RegistrationStatus(status)

        registration = await self._load(registration_id)
        self._require_party(
            actor,
            registration["coach_id"],
            registration_id,
            "You can only approve/reject registrations for your own athletes",
        )
        self._require_status(
            actor, registration_id, registration["status"], (RegistrationStatus.PENDING.value,), "decide on registration"
        )

        async def unit(tx: TransactionClient):
            await self._transition(tx, _DECIDE, {
                "id": registration_id,
                "coach_id": actor.id,
                "status": status.value,
                "notes": notes,
                "now": utcnow(),
            }, expected=RegistrationStatus.PENDING.value)

        await self._run(unit, "decide-sport-registration", actor=actor, resource_id=registration_id)

        approved = status == RegistrationStatus.APPROVED
        self._audit(
            actor,
            AuditAction.APPROVAL_GRANTED if approved else AuditAction.APPROVAL_DENIED,
            registration_id,
            denial_reason=None if approved else notes,
            before={"status": registration["status"]},
            after={"status": status.value},
        )
        sport = registration["sport"]
        await self._notify(
            registration["athlete_id"],
            "registration_approved" if approved else "registration_rejected",
            "Sport Registration Approved" if approved else "Sport Registration Rejected",
            f"Your sport registration for {sport} has been approved by your coach." if approved
            else f"Your sport registration for {sport} has been rejected by your coach." + (f" Reason: {notes}" if notes else ""),
        )
        return {**registration, "status": status.value, "notes": notes}

    async def cancel(self, registration_id: str) -> None:
        actor = await self.guard.require_permission(
            Permission.APPLY_TO_OPPORTUNITY, resource_type=self.resource_type, resource_id=registration_id
        )
        registration = await self._load(registration_id)
        self._require_party(
            actor,
            registration["athlete_id"],
            registration_id,
            "You can only cancel your own sport registrations",
        )
        self._require_status(
            actor, registration_id, registration["status"], (RegistrationStatus.PENDING.value,), "cancel registration"
        )

        async def unit(tx: TransactionClient):
            await self._transition(tx, _CANCEL, {
                "id": registration_id,
                "athlete_id": actor.id,
            }, expected=RegistrationStatus.PENDING.value)

        await self._run(unit, "cancel-sport-registration", actor=actor, resource_id=registration_id)

        self._audit(
            actor,
            AuditAction.RESOURCE_DELETED,
            registration_id,
            before={"status": registration["status"], "sport": registration["sport"]},
            after={"deleted": True},
        )
        await self._notify(
            registration["coach_id"],
            "registration_cancelled",
            "Sport Registration Cancelled",
            f"An athlete has cancelled their pending registration for {registration['sport']}.",
        )
