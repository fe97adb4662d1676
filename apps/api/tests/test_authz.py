"""
Authorization guard tests: authentication vs authorization vs ownership,
denial auditing, relationship predicates and identifier validation.
"""
import pytest

from core.authz import (
    COACH_ATHLETE,
    SPECIALIST_CLIENT,
    Actor,
    AuthorizationGuard,
    RelationshipPredicate,
    validate_identifier,
)
from core.exceptions import AuthenticationError, AuthorizationError, ErrorKind, OwnershipError
from core.permissions import Permission
from services.audit_logger import AuditAction, AuditResult
from tests.approval_helpers import add_consultation, add_training_plan, create_user


class TestRequirePermission:
    @pytest.mark.asyncio
    async def test_no_actor_is_authentication_error(self, guard_for, audit):
        guard = guard_for(None)
        for permission in Permission:
            with pytest.raises(AuthenticationError) as exc_info:
                await guard.require_permission(permission)
            assert exc_info.value.kind == ErrorKind.AUTHENTICATION
        # Authentication failures are not authorization decisions
        assert audit.entries == []

    @pytest.mark.asyncio
    async def test_wrong_role_is_authorization_error_and_audited(self, guard_for, audit):
        athlete = Actor(id="A1", role="athlete")
        guard = guard_for(athlete)

        with pytest.raises(AuthorizationError) as exc_info:
            await guard.require_permission(Permission.APPROVE_REGISTRATION, resource_type="registration", resource_id="U1")

        assert "APPROVE_REGISTRATION" in exc_info.value.detail
        assert "official" in exc_info.value.detail
        [entry] = audit.entries
        assert entry.action == AuditAction.PERMISSION_DENIED
        assert entry.result == AuditResult.DENIED
        assert entry.actor_id == "A1"
        assert entry.resource_type == "registration"
        assert entry.resource_id == "U1"
        assert entry.ip_address == "203.0.113.7"
        assert entry.user_agent == "pytest"

    @pytest.mark.asyncio
    async def test_denial_without_resource_names_the_permission(self, guard_for, audit):
        guard = guard_for(Actor(id="C1", role="coach"))
        with pytest.raises(AuthorizationError):
            await guard.require_permission(Permission.VIEW_AUDIT_LOGS)
        assert audit.entries[0].resource_id == "VIEW_AUDIT_LOGS"

    @pytest.mark.asyncio
    async def test_unknown_role_is_denied(self, guard_for):
        guard = guard_for(Actor(id="X1", role="superuser"))
        with pytest.raises(AuthorizationError):
            await guard.require_permission(Permission.VIEW_OWN_PROFILE)

    @pytest.mark.asyncio
    async def test_allowed_role_returns_actor(self, guard_for, audit):
        official = Actor(id="O1", role="official")
        guard = guard_for(official)
        assert await guard.require_permission(Permission.VERIFY_DOCUMENTS) == official
        assert audit.entries == []

    @pytest.mark.asyncio
    async def test_actor_resolved_once(self, engine, audit):
        calls = []

        async def source():
            calls.append(1)
            return Actor(id="O1", role="official")

        guard = AuthorizationGuard(source, engine=engine, audit=audit)
        await guard.require_permission(Permission.VERIFY_DOCUMENTS)
        await guard.require_permission(Permission.VIEW_AUDIT_LOGS)
        assert len(calls) == 1


class TestRequireOwnership:
    @pytest.mark.asyncio
    async def test_owner_passes(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        guard = guard_for(athlete)
        await guard.require_ownership("users", athlete.id, "id", athlete.id)

    @pytest.mark.asyncio
    async def test_non_owner_is_ownership_error(self, engine, guard_for, audit):
        owner = await create_user(engine, "athlete")
        other = await create_user(engine, "athlete")
        guard = guard_for(other)

        with pytest.raises(OwnershipError) as exc_info:
            await guard.require_ownership("users", owner.id, "id", other.id)

        assert exc_info.value.kind == ErrorKind.OWNERSHIP
        [entry] = audit.entries
        assert entry.action == AuditAction.OWNERSHIP_CHECK_FAILED
        assert entry.result == AuditResult.DENIED
        assert entry.resource_type == "users"
        assert entry.resource_id == owner.id

    @pytest.mark.asyncio
    async def test_missing_row_is_ownership_error(self, engine, guard_for):
        athlete = await create_user(engine, "athlete")
        with pytest.raises(OwnershipError):
            await guard_for(athlete).require_ownership("users", "missing", "id", athlete.id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("table,column", [
        ("users; DROP TABLE users", "id"),
        ("users", "id = id OR 1"),
        ("1users", "id"),
    ])
    async def test_rejects_unsafe_identifiers(self, engine, guard_for, table, column):
        athlete = await create_user(engine, "athlete")
        with pytest.raises(ValueError):
            await guard_for(athlete).require_ownership(table, athlete.id, column, athlete.id)


class TestRequireRelationship:
    @pytest.mark.asyncio
    async def test_coach_athlete_through_training_plan(self, engine, guard_for):
        coach = await create_user(engine, "coach")
        athlete = await create_user(engine, "athlete")
        await add_training_plan(engine, coach.id, [athlete.id])
        await guard_for(coach).require_relationship(coach.id, athlete.id, COACH_ATHLETE)

    @pytest.mark.asyncio
    async def test_coach_without_plan_is_denied(self, engine, guard_for, audit):
        coach = await create_user(engine, "coach")
        athlete = await create_user(engine, "athlete")
        other = await create_user(engine, "athlete")
        await add_training_plan(engine, coach.id, [other.id])

        with pytest.raises(OwnershipError):
            await guard_for(coach).require_relationship(coach.id, athlete.id, COACH_ATHLETE)

        [entry] = audit.entries
        assert entry.action == AuditAction.OWNERSHIP_CHECK_FAILED
        assert entry.resource_type == "relationship"
        assert "coach_athlete" in entry.denial_reason

    @pytest.mark.asyncio
    async def test_specialist_client_through_consultation(self, engine, guard_for):
        specialist = await create_user(engine, "specialist")
        athlete = await create_user(engine, "athlete")
        guard = guard_for(specialist)

        with pytest.raises(OwnershipError):
            await guard.require_relationship(specialist.id, athlete.id, SPECIALIST_CLIENT)

        await add_consultation(engine, specialist.id, athlete.id)
        await guard.require_relationship(specialist.id, athlete.id, SPECIALIST_CLIENT)

    @pytest.mark.asyncio
    async def test_custom_predicate(self, engine, guard_for):
        same_user = RelationshipPredicate(
            name="same_user",
            statement="SELECT 1 FROM users WHERE id = :party_a AND id = :party_b",
        )
        athlete = await create_user(engine, "athlete")
        await guard_for(athlete).require_relationship(athlete.id, athlete.id, same_user)


class TestRequireSelf:
    @pytest.mark.asyncio
    async def test_mismatch_raises_ownership_error_with_audit(self, guard_for, audit):
        official = Actor(id="O1", role="official")
        guard = guard_for(official)

        with pytest.raises(OwnershipError):
            guard.require_self(
                official,
                "O2",
                resource_type="registration",
                resource_id="U1",
                action=AuditAction.APPROVAL_DENIED,
                reason="Official ID mismatch",
            )

        [entry] = audit.entries
        assert entry.action == AuditAction.APPROVAL_DENIED
        assert entry.result == AuditResult.DENIED
        assert entry.denial_reason == "Official ID mismatch"

    @pytest.mark.asyncio
    async def test_match_passes_silently(self, guard_for, audit):
        official = Actor(id="O1", role="official")
        guard_for(official).require_self(official, "O1", resource_type="registration")
        assert audit.entries == []


class TestValidateIdentifier:
    @pytest.mark.parametrize("name", ["users", "sport_registrations", "_private", "coach_id2"])
    def test_accepts_plain_identifiers(self, name):
        assert validate_identifier(name) == name

    @pytest.mark.parametrize("name", ["", "a b", "users--", "x;y", "2fast", None])
    def test_rejects_everything_else(self, name):
        with pytest.raises(ValueError):
            validate_identifier(name)
