"""
Registration approval workflow tests (officials approve / reject users).
"""
from datetime import datetime, timezone

import pytest

from core.database import query
from core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ErrorKind,
    NotFoundError,
    OwnershipError,
    TransactionFailedError,
    ValidationError,
)
from services.approvals import RegistrationWorkflow
from services.audit_logger import AuditAction, AuditFilters, AuditResult, query_audit_logs
from tests.approval_helpers import create_user, fetch_notifications, fetch_user


async def _submit_document(engine, user_id, role, *, document_id=None, submitted_at=None):
    await query(
        "INSERT INTO document_submissions (id, user_id, role, document_type, file_path, status, submitted_at) "
        "VALUES (:id, :user_id, :role, 'id_card', '/uploads/id.pdf', 'pending', :submitted_at)",
        {
            "id": document_id or f"doc-{user_id}",
            "user_id": user_id,
            "role": role,
            "submitted_at": (submitted_at or datetime.now(timezone.utc)).isoformat(),
        },
        engine=engine,
    )


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_official_approves_pending_user(self, engine, outbox, guard_for):
        official = await create_user(engine, "official", user_id="O1")
        await create_user(engine, "athlete", user_id="U1")
        workflow = RegistrationWorkflow(guard_for(official, sink=outbox.log_audit))

        result = await workflow.approve("U1", "O1")
        await outbox.flush()

        user = await fetch_user(engine, "U1")
        assert user["registration_verified"] is True
        assert user["registration_rejected"] is False
        assert user["profile_verified"] is True
        assert user["email_verified"] is True
        assert user["verified_by"] == "O1"
        assert result == {
            "id": "U1",
            "registration_verified": True,
            "registration_rejected": False,
            "profile_verified": True,
            "role": "athlete",
        }

        rows = await query_audit_logs(
            AuditFilters(action=AuditAction.APPROVAL_GRANTED, resource_id="U1"), engine=engine
        )
        assert len(rows) == 1
        assert rows[0]["actor_id"] == "O1"
        assert rows[0]["status_before"]["registration_verified"] is False
        assert rows[0]["status_after"]["registration_verified"] is True

    @pytest.mark.asyncio
    async def test_official_id_mismatch_is_denied_without_mutation(self, engine, outbox, guard_for):
        official = await create_user(engine, "official", user_id="O1")
        await create_user(engine, "athlete", user_id="U1")
        before = await fetch_user(engine, "U1")
        workflow = RegistrationWorkflow(guard_for(official, sink=outbox.log_audit))

        with pytest.raises(OwnershipError) as exc_info:
            await workflow.approve("U1", "O2")
        await outbox.flush()

        assert exc_info.value.status_code == 403
        assert await fetch_user(engine, "U1") == before
        [row] = await query_audit_logs(AuditFilters(result=AuditResult.DENIED), engine=engine)
        assert row["action"] == "APPROVAL_DENIED"
        assert row["actor_id"] == "O1"
        assert row["resource_id"] == "U1"
        assert row["denial_reason"] == "Official ID mismatch"
        assert await fetch_notifications(engine, "U1") == []


class TestApprove:
    @pytest.mark.asyncio
    async def test_anonymous_is_authentication_error(self, engine, guard_for):
        await create_user(engine, "athlete", user_id="U1")
        with pytest.raises(AuthenticationError):
            await RegistrationWorkflow(guard_for(None)).approve("U1", "O1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["athlete", "coach", "specialist"])
    async def test_non_officials_are_not_permitted(self, engine, guard_for, audit, role):
        actor = await create_user(engine, role)
        await create_user(engine, "athlete", user_id="U1")

        with pytest.raises(AuthorizationError):
            await RegistrationWorkflow(guard_for(actor)).approve("U1", actor.id)

        [entry] = audit.entries
        assert entry.action == AuditAction.PERMISSION_DENIED
        assert (await fetch_user(engine, "U1"))["registration_verified"] is False

    @pytest.mark.asyncio
    async def test_unknown_user_is_not_found(self, engine, guard_for):
        official = await create_user(engine, "official")
        with pytest.raises(NotFoundError) as exc_info:
            await RegistrationWorkflow(guard_for(official)).approve("nobody", official.id)
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_role_taken_from_latest_document(self, engine, guard_for, audit):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1")
        await _submit_document(engine, "U1", "coach")

        result = await RegistrationWorkflow(guard_for(official)).approve("U1", official.id)

        assert result["role"] == "coach"
        assert (await fetch_user(engine, "U1"))["role"] == "coach"
        [assignment] = audit.find(AuditAction.ROLE_ASSIGNMENT)
        assert assignment.status_before == {"role": "athlete"}
        assert assignment.status_after == {"role": "coach"}

    @pytest.mark.asyncio
    async def test_official_document_never_grants_official_role(self, engine, guard_for, audit):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1")
        await _submit_document(engine, "U1", "official")

        result = await RegistrationWorkflow(guard_for(official)).approve("U1", official.id)

        assert result["role"] == "athlete"
        assert (await fetch_user(engine, "U1"))["role"] == "athlete"
        assert audit.find(AuditAction.ROLE_ASSIGNMENT) == []

    @pytest.mark.asyncio
    async def test_official_document_is_skipped_for_older_role(self, engine, guard_for):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1")
        await _submit_document(
            engine, "U1", "specialist", document_id="doc-old", submitted_at=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        await _submit_document(
            engine, "U1", "official", document_id="doc-new", submitted_at=datetime(2024, 6, 1, tzinfo=timezone.utc)
        )

        result = await RegistrationWorkflow(guard_for(official)).approve("U1", official.id)

        assert result["role"] == "specialist"

    @pytest.mark.asyncio
    async def test_no_role_assignment_when_role_unchanged(self, engine, guard_for, audit):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1")
        await RegistrationWorkflow(guard_for(official)).approve("U1", official.id)
        assert audit.find(AuditAction.ROLE_ASSIGNMENT) == []

    @pytest.mark.asyncio
    async def test_user_is_notified(self, engine, guard_for):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1")
        await RegistrationWorkflow(guard_for(official)).approve("U1", official.id)

        [notification] = await fetch_notifications(engine, "U1")
        assert notification["type"] == "registration_approved"
        assert notification["action_url"] == "/dashboard"

    @pytest.mark.asyncio
    async def test_rejected_user_can_be_approved_later(self, engine, guard_for):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1")
        workflow = RegistrationWorkflow(guard_for(official))

        await workflow.reject("U1", official.id, "Blurry ID card")
        result = await workflow.approve("U1", official.id)

        assert result["registration_verified"] is True
        assert result["registration_rejected"] is False
        user = await fetch_user(engine, "U1")
        assert user["rejection_reason"] is None

    @pytest.mark.asyncio
    async def test_store_failure_is_server_error_with_audit(self, engine, guard_for, audit):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1")
        await query("DROP TABLE document_submissions", engine=engine)

        with pytest.raises(TransactionFailedError) as exc_info:
            await RegistrationWorkflow(guard_for(official)).approve("U1", official.id)

        error = exc_info.value
        assert error.status_code == 500
        assert "document_submissions" not in error.detail
        assert error.cause is not None
        assert error.transaction_id.startswith("tx-")
        [entry] = audit.find(AuditAction.ERROR_OCCURRED)
        assert entry.result == AuditResult.ERROR
        assert entry.error_message
        assert (await fetch_user(engine, "U1"))["registration_verified"] is False


class TestReject:
    @pytest.mark.asyncio
    async def test_reject_sets_flags_and_reason(self, engine, guard_for, audit):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1", profile_verified=True)

        result = await RegistrationWorkflow(guard_for(official)).reject("U1", official.id, "Documents expired")

        assert result["registration_verified"] is False
        assert result["registration_rejected"] is True
        assert result["profile_verified"] is False
        user = await fetch_user(engine, "U1")
        assert user["rejection_reason"] == "Documents expired"
        [entry] = audit.find(AuditAction.APPROVAL_DENIED)
        assert entry.result == AuditResult.SUCCESS
        assert entry.denial_reason == "Documents expired"
        [notification] = await fetch_notifications(engine, "U1")
        assert notification["type"] == "registration_rejected"
        assert "Documents expired" in notification["message"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reason", [None, "", "   "])
    async def test_reason_is_required(self, engine, guard_for, reason):
        official = await create_user(engine, "official")
        await create_user(engine, "athlete", user_id="U1")

        with pytest.raises(ValidationError) as exc_info:
            await RegistrationWorkflow(guard_for(official)).reject("U1", official.id, reason)

        assert exc_info.value.field == "reason"
        assert (await fetch_user(engine, "U1"))["registration_rejected"] is False

    @pytest.mark.asyncio
    async def test_official_id_mismatch(self, engine, guard_for, audit):
        official = await create_user(engine, "official", user_id="O1")
        await create_user(engine, "athlete", user_id="U1")

        with pytest.raises(OwnershipError):
            await RegistrationWorkflow(guard_for(official)).reject("U1", "O2", "nope")

        [entry] = audit.entries
        assert entry.action == AuditAction.APPROVAL_DENIED
        assert entry.result == AuditResult.DENIED
