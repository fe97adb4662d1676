"""
Document-driven verification tests.

profile_verified is re-derived from the user's full document set on every
review: true iff at least one document exists and all are approved.
"""
import pytest

from core.exceptions import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from services.approvals import DocumentVerificationWorkflow
from services.approvals.documents import derive_verification
from services.audit_logger import AuditAction, AuditResult
from tests.approval_helpers import count_rows, create_user, fetch_notifications, fetch_row, fetch_user


async def _submit(guard_for, actor, document_type="id_card", role=None):
    workflow = DocumentVerificationWorkflow(guard_for(actor))
    return await workflow.submit(role or actor.role, document_type, f"/uploads/{actor.id}/{document_type}.pdf")


class TestDeriveVerification:
    @pytest.mark.parametrize("total,approved,expected", [
        (0, 0, False),
        (1, 0, False),
        (1, 1, True),
        (3, 2, False),
        (3, 3, True),
    ])
    def test_rule(self, total, approved, expected):
        assert derive_verification(total, approved) is expected


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_creates_pending_document(self, engine, guard_for, audit):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")

        document = await _submit(guard_for, athlete)

        row = await fetch_row(engine, "document_submissions", document["id"])
        assert row["status"] == "pending"
        assert row["user_id"] == athlete.id
        assert (await fetch_user(engine, athlete.id))["profile_pending_verification"] is True
        [entry] = audit.find(AuditAction.RESOURCE_CREATED)
        assert entry.resource_id == document["id"]
        [notification] = await fetch_notifications(engine, official.id)
        assert notification["type"] == "document_submitted"

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        with pytest.raises(ValidationError) as exc_info:
            await _submit(guard_for, athlete, role="astronaut")
        assert exc_info.value.field == "role"
        assert await count_rows(engine, "document_submissions") == 0

    @pytest.mark.asyncio
    async def test_official_role_cannot_be_requested(self, engine, guard_for, audit):
        athlete = await create_user(engine, "athlete")

        with pytest.raises(AuthorizationError):
            await _submit(guard_for, athlete, role="official")

        assert await count_rows(engine, "document_submissions") == 0
        assert (await fetch_user(engine, athlete.id))["profile_pending_verification"] is False
        [entry] = audit.entries
        assert entry.action == AuditAction.PERMISSION_DENIED
        assert entry.result == AuditResult.DENIED


class TestReview:
    @pytest.mark.asyncio
    async def test_all_approved_verifies_profile(self, engine, guard_for, audit):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")
        first = await _submit(guard_for, athlete, "id_card")
        second = await _submit(guard_for, athlete, "birth_certificate")
        workflow = DocumentVerificationWorkflow(guard_for(official))

        result = await workflow.review(first["id"], "approve")
        assert result["profile_verified"] is False
        assert result["documents"] == {"total": 2, "approved": 1, "rejected": 0}
        assert (await fetch_user(engine, athlete.id))["profile_verified"] is False

        result = await workflow.review(second["id"], "approve")
        assert result["profile_verified"] is True
        user = await fetch_user(engine, athlete.id)
        assert user["profile_verified"] is True
        assert user["profile_pending_verification"] is False
        assert user["email_verified"] is True

        completed = audit.find(AuditAction.VERIFICATION_COMPLETED)
        assert [e.resource_id for e in completed] == [first["id"], second["id"]]
        [change] = audit.find(AuditAction.STATUS_CHANGE)
        assert change.resource_type == "user_verification"
        assert change.status_after == {"profile_verified": True, "profile_pending_verification": False}

    @pytest.mark.asyncio
    async def test_any_rejection_unverifies(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")
        first = await _submit(guard_for, athlete, "id_card")
        workflow = DocumentVerificationWorkflow(guard_for(official))
        await workflow.review(first["id"], "approve")
        assert (await fetch_user(engine, athlete.id))["profile_verified"] is True

        second = await _submit(guard_for, athlete, "medical_form")
        result = await workflow.review(second["id"], "reject", "Unreadable scan")

        assert result["profile_verified"] is False
        assert result["documents"] == {"total": 2, "approved": 1, "rejected": 1}
        user = await fetch_user(engine, athlete.id)
        assert user["profile_verified"] is False
        assert user["profile_pending_verification"] is True
        row = await fetch_row(engine, "document_submissions", second["id"])
        assert row["rejection_reason"] == "Unreadable scan"
        assert row["approved_by"] == official.id

    @pytest.mark.asyncio
    async def test_rejection_can_be_cured_by_resubmitting(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")
        workflow = DocumentVerificationWorkflow(guard_for(official))

        rejected = await _submit(guard_for, athlete)
        await workflow.review(rejected["id"], "reject", "Expired")
        resubmitted = await _submit(guard_for, athlete)
        result = await workflow.review(resubmitted["id"], "approve")

        # The earlier rejection still counts against the aggregate
        assert result["profile_verified"] is False
        assert result["documents"] == {"total": 2, "approved": 1, "rejected": 1}

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")
        document = await _submit(guard_for, athlete)

        with pytest.raises(ValidationError) as exc_info:
            await DocumentVerificationWorkflow(guard_for(official)).review(document["id"], "reject", " ")
        assert exc_info.value.field == "reason"
        assert (await fetch_row(engine, "document_submissions", document["id"]))["status"] == "pending"

    @pytest.mark.asyncio
    async def test_invalid_action(self, engine, guard_for):
        official = await create_user(engine, "official")
        with pytest.raises(ValidationError):
            await DocumentVerificationWorkflow(guard_for(official)).review("doc", "maybe")

    @pytest.mark.asyncio
    async def test_unknown_document(self, engine, guard_for):
        official = await create_user(engine, "official")
        with pytest.raises(NotFoundError):
            await DocumentVerificationWorkflow(guard_for(official)).review("missing", "approve")

    @pytest.mark.asyncio
    async def test_revoking_an_approval_unverifies_the_user(self, engine, guard_for, audit):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")
        document = await _submit(guard_for, athlete)
        workflow = DocumentVerificationWorkflow(guard_for(official))
        await workflow.review(document["id"], "approve")
        assert (await fetch_user(engine, athlete.id))["profile_verified"] is True
        audit.clear()

        result = await workflow.review(document["id"], "reject", "Forged certificate")

        assert result["status"] == "rejected"
        assert result["profile_verified"] is False
        user = await fetch_user(engine, athlete.id)
        assert user["profile_verified"] is False
        assert user["profile_pending_verification"] is True
        row = await fetch_row(engine, "document_submissions", document["id"])
        assert row["rejection_reason"] == "Forged certificate"
        [decision] = audit.find(AuditAction.APPROVAL_DENIED)
        assert decision.status_before == {"status": "approved"}
        assert decision.status_after == {"status": "rejected"}

    @pytest.mark.asyncio
    async def test_rejection_can_be_overturned(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")
        document = await _submit(guard_for, athlete)
        workflow = DocumentVerificationWorkflow(guard_for(official))
        await workflow.review(document["id"], "reject", "Blurry scan")

        result = await workflow.review(document["id"], "approve")

        assert result["profile_verified"] is True
        row = await fetch_row(engine, "document_submissions", document["id"])
        assert row["status"] == "approved"
        assert row["rejection_reason"] is None

    @pytest.mark.asyncio
    async def test_repeating_a_decision_is_invalid_transition(self, engine, guard_for, audit):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")
        document = await _submit(guard_for, athlete)
        workflow = DocumentVerificationWorkflow(guard_for(official))
        await workflow.review(document["id"], "approve")
        audit.clear()

        with pytest.raises(InvalidTransitionError):
            await workflow.review(document["id"], "approve")

        [entry] = audit.entries
        assert entry.action == AuditAction.STATUS_CHANGE
        assert entry.result == AuditResult.DENIED
        assert entry.status_before == {"status": "approved"}
        assert (await fetch_user(engine, athlete.id))["profile_verified"] is True

    @pytest.mark.asyncio
    async def test_only_officials_review(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        coach = await create_user(engine, "coach")
        document = await _submit(guard_for, athlete)
        with pytest.raises(AuthorizationError):
            await DocumentVerificationWorkflow(guard_for(coach)).review(document["id"], "approve")

    @pytest.mark.asyncio
    async def test_user_notified_of_outcome(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        official = await create_user(engine, "official")
        document = await _submit(guard_for, athlete)
        await DocumentVerificationWorkflow(guard_for(official)).review(document["id"], "approve")

        [notification] = await fetch_notifications(engine, athlete.id)
        assert notification["type"] == "document_approved"
        assert "profile is now verified" in notification["message"]
