"""
Sport Registration Endpoints

POST   /v1/sport-registrations                - Athlete registers for a sport under a coach.
PATCH  /v1/sport-registrations/{id}/decision  - Assigned coach approves or rejects.
DELETE /v1/sport-registrations/{id}           - Athlete cancels a pending registration.
"""
import logging

from fastapi import APIRouter, Depends, status

from core.authz import AuthorizationGuard
from core.auth import get_guard
from schemas import SportRegistrationCreateRequest, SportRegistrationDecisionRequest
from services.approvals import SportRegistrationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/sport-registrations", tags=["sport-registrations"])


def get_workflow(guard: AuthorizationGuard = Depends(get_guard)) -> SportRegistrationWorkflow:
    return SportRegistrationWorkflow(guard)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_sport_registration(
    body: SportRegistrationCreateRequest,
    workflow: SportRegistrationWorkflow = Depends(get_workflow),
):
    registration = await workflow.register(body.athlete_id, body.coach_id, body.sport, body.priority)
    return {"registration": registration}


@router.patch("/{registration_id}/decision")
async def decide_sport_registration(
    registration_id: str,
    body: SportRegistrationDecisionRequest,
    workflow: SportRegistrationWorkflow = Depends(get_workflow),
):
    registration = await workflow.decide(registration_id, body.status, body.notes)
    return {"registration": registration, "message": f"Sport registration {body.status} successfully"}


@router.delete("/{registration_id}")
async def cancel_sport_registration(
    registration_id: str,
    workflow: SportRegistrationWorkflow = Depends(get_workflow),
):
    await workflow.cancel(registration_id)
    return {"message": "Sport registration cancelled successfully"}
