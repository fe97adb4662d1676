"""
Verification Document Endpoints

POST /v1/documents              - Submit a verification document (any role).
POST /v1/documents/{id}/review  - Approve or reject a document, or revise an earlier decision (officials).

A user's profile is verified only once every one of their documents is approved.
"""
import logging

from fastapi import APIRouter, Depends, status

from core.authz import AuthorizationGuard
from core.auth import get_guard
from schemas import DocumentReviewRequest, DocumentSubmitRequest
from services.approvals import DocumentVerificationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/documents", tags=["documents"])


def get_workflow(guard: AuthorizationGuard = Depends(get_guard)) -> DocumentVerificationWorkflow:
    return DocumentVerificationWorkflow(guard)


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_document(
    body: DocumentSubmitRequest,
    workflow: DocumentVerificationWorkflow = Depends(get_workflow),
):
    document = await workflow.submit(
        body.role,
        body.document_type,
        body.file_path,
        original_filename=body.original_filename,
        file_size=body.file_size,
        mime_type=body.mime_type,
    )
    return {"document": document}


@router.post("/{document_id}/review")
async def review_document(
    document_id: str,
    body: DocumentReviewRequest,
    workflow: DocumentVerificationWorkflow = Depends(get_workflow),
):
    result = await workflow.review(document_id, body.action, body.reason)
    return {"document": result, "message": f"Document {result['status']} successfully"}
