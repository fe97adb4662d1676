"""
Registration Approval Endpoints

POST /v1/official/registrations/approve  - Approve a pending registration.
POST /v1/official/registrations/reject   - Reject a registration with a reason.

Officials must act under their own id: `officialId` in the body has to match
the authenticated official.
"""
import logging

from fastapi import APIRouter, Depends

from core.authz import AuthorizationGuard
from core.auth import get_guard
from schemas import RegistrationApproveRequest, RegistrationRejectRequest, RegistrationResponse
from services.approvals import RegistrationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/official/registrations", tags=["registrations"])


def get_workflow(guard: AuthorizationGuard = Depends(get_guard)) -> RegistrationWorkflow:
    return RegistrationWorkflow(guard)


@router.post("/approve", response_model=RegistrationResponse)
async def approve_registration(
    body: RegistrationApproveRequest,
    workflow: RegistrationWorkflow = Depends(get_workflow),
):
    return await workflow.approve(body.user_id, body.official_id)


@router.post("/reject", response_model=RegistrationResponse)
async def reject_registration(
    body: RegistrationRejectRequest,
    workflow: RegistrationWorkflow = Depends(get_workflow),
):
    return await workflow.reject(body.user_id, body.official_id, body.reason)
