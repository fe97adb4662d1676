"""
Profile Change Request Endpoints

POST  /v1/profile-change-requests              - Athlete requests a profile change.
PATCH /v1/profile-change-requests/{id}/review  - Official approves or rejects it.

On approval the requested changes are merged into the profile in the same
transaction as the status update.
"""
import logging

from fastapi import APIRouter, Depends, status

from core.authz import AuthorizationGuard
from core.auth import get_guard
from schemas import ProfileChangeCreateRequest, ProfileChangeReviewRequest
from services.approvals import ProfileChangeWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/profile-change-requests", tags=["profile-change-requests"])


def get_workflow(guard: AuthorizationGuard = Depends(get_guard)) -> ProfileChangeWorkflow:
    return ProfileChangeWorkflow(guard)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_profile_change_request(
    body: ProfileChangeCreateRequest,
    workflow: ProfileChangeWorkflow = Depends(get_workflow),
):
    request = await workflow.submit(
        body.requested_changes,
        body.reason,
        body.document_path,
        document_name=body.document_name,
        document_size=body.document_size,
        document_mime_type=body.document_mime_type,
    )
    return {"request": request, "message": "Profile change request submitted successfully"}


@router.patch("/{request_id}/review")
async def review_profile_change_request(
    request_id: str,
    body: ProfileChangeReviewRequest,
    workflow: ProfileChangeWorkflow = Depends(get_workflow),
):
    request = await workflow.review(request_id, body.status, body.review_notes)
    return {"request": request, "message": f"Profile change request {body.status} successfully"}
