"""
Multi-stage medical leave review.

    pending_specialist_review --(specialist: reject)--> rejected        (terminal)
    pending_specialist_review --(specialist: approve)--> pending_coach_decision
    pending_coach_decision    --(assigned coach)------> approved

`specialist_reviewed` is a legacy spelling of pending_coach_decision that
older rows may still carry; the coach decision accepts both.
"""
import logging
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import uuid4

from sqlalchemy import Date, DateTime, Integer, String

from core.database import query_one, sql
from core.exceptions import NotFoundError, ValidationError
from core.permissions import Permission, Role
from core.transaction import TransactionClient
from services.approvals._common import ApprovalWorkflow, utcnow
from services.audit_logger import AuditAction

logger = logging.getLogger(__name__)


class LeaveStatus(str, Enum):
    PENDING_SPECIALIST_REVIEW = "pending_specialist_review"
    PENDING_COACH_DECISION = "pending_coach_decision"
    SPECIALIST_REVIEWED = "specialist_reviewed"  # legacy
    REJECTED = "rejected"
    APPROVED = "approved"


class SpecialistRecommendation(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class CoachDecision(str, Enum):
    STOP_TRAINING = "stop_training"
    CONTINUE_MODIFIED = "continue_modified"
    CONTINUE_NORMAL = "continue_normal"


COACH_DECISION_STATES = (LeaveStatus.PENDING_COACH_DECISION.value, LeaveStatus.SPECIALIST_REVIEWED.value)

_INSERT_LEAVE = sql(
    """
    INSERT INTO medical_leave_requests
        (id, athlete_id, coach_id, leave_type, reason, start_date, end_date, duration_days,
         medical_certificate_path, medical_certificate_name, medical_certificate_size, status, created_at)
    VALUES
        (:id, :athlete_id, :coach_id, :leave_type, :reason, :start_date, :end_date, :duration_days,
         :certificate_path, :certificate_name, :certificate_size, :status, :created_at)
    """,
    start_date=Date(),
    end_date=Date(),
    duration_days=Integer(),
    certificate_path=String(),
    certificate_name=String(),
    certificate_size=Integer(),
    created_at=DateTime(timezone=True),
)

_SELECT_LEAVE = """
    SELECT id, athlete_id, coach_id, specialist_id, leave_type, status,
           specialist_recommendation, coach_decision
    FROM medical_leave_requests
    WHERE id = :id
"""

_SPECIALIST_REVIEW = sql(
    """
    UPDATE medical_leave_requests
    SET specialist_id = :specialist_id,
        specialist_review = :review,
        specialist_recommendation = :recommendation,
        specialist_reviewed_at = :now,
        status = :status,
        updated_at = :now
    WHERE id = :id AND status = :expected
    """,
    now=DateTime(timezone=True),
)

_COACH_DECISION = sql(
    """
    UPDATE medical_leave_requests
    SET coach_decision = :decision,
        coach_notes = :notes,
        coach_decided_at = :now,
        status = :status,
        updated_at = :now
    WHERE id = :id AND status = :expected AND coach_id = :coach_id
    """,
    notes=String(),
    now=DateTime(timezone=True),
)


def _as_date(value: Union[date, str, None], field: str) -> date:
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date", field=field)


def leave_duration_days(start: date, end: date) -> int:
    """Inclusive day count: a leave starting and ending on the same day lasts 1 day."""
    return (end - start).days + 1


class MedicalLeaveWorkflow(ApprovalWorkflow):
    resource_type = "medical_leave_request"

    async def _load(self, leave_id: str) -> Dict[str, Any]:
        leave = await query_one(_SELECT_LEAVE, {"id": leave_id}, engine=self.engine)
        if leave is None:
            raise NotFoundError("Medical leave request", leave_id)
        return leave

    async def request(
        self,
        coach_id: str,
        leave_type: str,
        reason: str,
        start_date: Union[date, str],
        end_date: Union[date, str],
        *,
        certificate_path: Optional[str] = None,
        certificate_name: Optional[str] = None,
        certificate_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        actor = await self.guard.require_permission(Permission.REQUEST_MEDICAL_LEAVE, resource_type=self.resource_type)
        if not coach_id or not leave_type or not reason:
            raise ValidationError("Coach, leave type, reason, start date, and end date are required")
        start = _as_date(start_date, "start_date")
        end = _as_date(end_date, "end_date")
        if end < start:
            raise ValidationError("end_date must not be before start_date", field="end_date")

        coach = await query_one("SELECT id, role FROM users WHERE id = :id", {"id": coach_id}, engine=self.engine)
        if coach is None or coach["role"] != Role.COACH.value:
            raise NotFoundError("Coach", coach_id)

        leave_id = str(uuid4())
        duration = leave_duration_days(start, end)

        async def unit(tx: TransactionClient):
            await tx.query(_INSERT_LEAVE, {
                "id": leave_id,
                "athlete_id": actor.id,
                "coach_id": coach_id,
                "leave_type": leave_type,
                "reason": reason,
                "start_date": start,
                "end_date": end,
                "duration_days": duration,
                "certificate_path": certificate_path,
                "certificate_name": certificate_name,
                "certificate_size": certificate_size,
                "status": LeaveStatus.PENDING_SPECIALIST_REVIEW.value,
                "created_at": utcnow(),
            })

        await self._run(unit, "create-medical-leave", actor=actor, resource_id=leave_id)

        self._audit(
            actor,
            AuditAction.RESOURCE_CREATED,
            leave_id,
            after={"status": LeaveStatus.PENDING_SPECIALIST_REVIEW.value, "leave_type": leave_type},
        )
        await self.notifier.notify_role(
            Role.SPECIALIST,
            "medical_leave_request",
            "New Medical Leave Request",
            f"An athlete has submitted a {leave_type} leave request requiring review",
            f"/specialist/medical-leaves/{leave_id}",
            verified_only=True,
        )
        await self._notify(
            coach_id,
            "medical_leave_request",
            "Medical Leave Request Submitted",
            "Your athlete has submitted a medical leave request pending specialist review",
            f"/coach/medical-leaves/{leave_id}",
        )
        return {
            "id": leave_id,
            "status": LeaveStatus.PENDING_SPECIALIST_REVIEW.value,
            "duration_days": duration,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        }

    async def specialist_review(self, leave_id: str, review: str, recommendation: str) -> Dict[str, Any]:
        actor = await self.guard.require_permission(
            Permission.REVIEW_MEDICAL_LEAVE, resource_type=self.resource_type, resource_id=leave_id
        )
        try:
            recommendation = SpecialistRecommendation(recommendation)
        except ValueError:
            raise ValidationError("recommendation must be 'approve' or 'reject'", field="recommendation")
        if not review or not review.strip():
            raise ValidationError("specialist_review is required", field="specialist_review")

        leave = await self._load(leave_id)
        if leave["specialist_id"] is not None:
            self._require_party(actor, leave["specialist_id"], leave_id, "Leave request is assigned to another specialist")
        self._require_status(
            actor, leave_id, leave["status"], (LeaveStatus.PENDING_SPECIALIST_REVIEW.value,), "review leave request"
        )

        new_status = (
            LeaveStatus.REJECTED if recommendation == SpecialistRecommendation.REJECT
            else LeaveStatus.PENDING_COACH_DECISION
        )

        async def unit(tx: TransactionClient):
            await self._transition(tx, _SPECIALIST_REVIEW, {
                "id": leave_id,
                "specialist_id": actor.id,
                "review": review,
                "recommendation": recommendation.value,
                "status": new_status.value,
                "now": utcnow(),
            }, expected=LeaveStatus.PENDING_SPECIALIST_REVIEW.value)

        await self._run(unit, "specialist-review-medical-leave", actor=actor, resource_id=leave_id)

        self._audit(
            actor,
            AuditAction.STATUS_CHANGE,
            leave_id,
            before={"status": leave["status"]},
            after={"status": new_status.value, "specialist_recommendation": recommendation.value},
        )
        await self._notify(
            leave["coach_id"],
            "medical_leave_reviewed",
            "Medical Leave Review Complete",
            f"A specialist has reviewed the medical leave request with recommendation: {recommendation.value}",
            f"/coach/medical-leaves/{leave_id}",
        )
        await self._notify(
            leave["athlete_id"],
            "medical_leave_reviewed",
            "Medical Leave Review Complete",
            "Your medical leave request has been reviewed by a specialist",
            f"/athlete/medical-leaves/{leave_id}",
        )
        return {"id": leave_id, "status": new_status.value, "specialist_recommendation": recommendation.value}

    async def coach_decision(self, leave_id: str, decision: str, notes: Optional[str] = None) -> Dict[str, Any]:
        actor = await self.guard.require_permission(
            Permission.DECIDE_MEDICAL_LEAVE, resource_type=self.resource_type, resource_id=leave_id
        )
        try:
            decision = CoachDecision(decision)
        except ValueError:
            raise ValidationError(
                "coach_decision must be one of: stop_training, continue_modified, continue_normal",
                field="coach_decision",
            )

        leave = await self._load(leave_id)
        self._require_party(actor, leave["coach_id"], leave_id, "Only the athlete's coach can decide on this request")
        self._require_status(actor, leave_id, leave["status"], COACH_DECISION_STATES, "decide on leave request")

        async def unit(tx: TransactionClient):
            await self._transition(tx, _COACH_DECISION, {
                "id": leave_id,
                "coach_id": actor.id,
                "decision": decision.value,
                "notes": notes,
                "status": LeaveStatus.APPROVED.value,
                "now": utcnow(),
            }, expected=leave["status"])

        await self._run(unit, "coach-decision-medical-leave", actor=actor, resource_id=leave_id)

        self._audit(
            actor,
            AuditAction.APPROVAL_GRANTED,
            leave_id,
            before={"status": leave["status"]},
            after={"status": LeaveStatus.APPROVED.value, "coach_decision": decision.value},
        )
        await self._notify(
            leave["athlete_id"],
            "medical_leave_decision",
            "Coach Decision on Medical Leave",
            f"Your coach has decided: {decision.value}",
            f"/athlete/medical-leaves/{leave_id}",
        )
        return {"id": leave_id, "status": LeaveStatus.APPROVED.value, "coach_decision": decision.value}
