"""
Approval workflow state machines.

Each workflow composes the authorization guard, the transaction executor,
the audit trail and the notification sink around one entity's status field.
"""
from services.approvals._common import ApprovalWorkflow
from services.approvals.documents import DocumentVerificationWorkflow
from services.approvals.medical_leave import MedicalLeaveWorkflow
from services.approvals.profile_changes import ProfileChangeWorkflow
from services.approvals.registration import RegistrationWorkflow
from services.approvals.sport_registrations import SportRegistrationWorkflow

__all__ = [
    "ApprovalWorkflow",
    "DocumentVerificationWorkflow",
    "MedicalLeaveWorkflow",
    "ProfileChangeWorkflow",
    "RegistrationWorkflow",
    "SportRegistrationWorkflow",
]
