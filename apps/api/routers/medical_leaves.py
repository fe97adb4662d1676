"""
Medical Leave Endpoints

POST /v1/medical-leaves                         - Athlete files a leave request.
POST /v1/medical-leaves/{id}/specialist-review  - Specialist recommends approve/reject.
POST /v1/medical-leaves/{id}/coach-decision     - Assigned coach takes the final decision.
"""
import logging

from fastapi import APIRouter, Depends, status

from core.authz import AuthorizationGuard
from core.auth import get_guard
from schemas import CoachDecisionRequest, MedicalLeaveCreateRequest, SpecialistReviewRequest
from services.approvals import MedicalLeaveWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/medical-leaves", tags=["medical-leaves"])


def get_workflow(guard: AuthorizationGuard = Depends(get_guard)) -> MedicalLeaveWorkflow:
    return MedicalLeaveWorkflow(guard)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_medical_leave(
    body: MedicalLeaveCreateRequest,
    workflow: MedicalLeaveWorkflow = Depends(get_workflow),
):
    leave = await workflow.request(
        body.coach_id,
        body.leave_type,
        body.reason,
        body.start_date,
        body.end_date,
        certificate_path=body.medical_certificate_path,
        certificate_name=body.medical_certificate_name,
        certificate_size=body.medical_certificate_size,
    )
    return {"medicalLeave": leave}


@router.post("/{leave_id}/specialist-review")
async def specialist_review(
    leave_id: str,
    body: SpecialistReviewRequest,
    workflow: MedicalLeaveWorkflow = Depends(get_workflow),
):
    leave = await workflow.specialist_review(leave_id, body.specialist_review, body.specialist_recommendation)
    return {"medicalLeave": leave}


@router.post("/{leave_id}/coach-decision")
async def coach_decision(
    leave_id: str,
    body: CoachDecisionRequest,
    workflow: MedicalLeaveWorkflow = Depends(get_workflow),
):
    leave = await workflow.coach_decision(leave_id, body.coach_decision, body.coach_notes)
    return {"medicalLeave": leave}
