"""
Authorization guard - RBAC enforcement layer.

Every privileged mutation calls `require_permission()` before touching the
store. Role membership is necessary but not sufficient: decision endpoints
follow it with an ownership or relationship check against the specific
resource.

    guard = AuthorizationGuard(resolve_current_user)
    actor = await guard.require_permission(Permission.APPROVE_SPORT_REGISTRATION)
    await guard.require_ownership("sport_registrations", registration_id, "coach_id", actor.id)

Failure categories stay distinct:
- no actor                 -> AuthenticationError (401)
- actor lacks permission   -> AuthorizationError  (403)
- not this actor's resource -> OwnershipError     (403)

Denials (not authentication failures) are written to the audit trail with
result=denied.
"""
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from core.database import query_one
from core.exceptions import AuthenticationError, AuthorizationError, OwnershipError
from core.permissions import Permission, Role, has_permission, roles_for
from services.audit_logger import AuditAction, AuditLogEntry, AuditResult, log_audit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Resolved caller identity. Read-only for the duration of one request."""

    id: str
    role: str
    email: Optional[str] = None
    name: Optional[str] = None
    profile_verified: bool = False

    @property
    def role_enum(self) -> Optional[Role]:
        try:
            return Role(self.role)
        except ValueError:
            return None


CurrentUserSource = Callable[[], Awaitable[Optional[Actor]]]
AuditSink = Callable[[AuditLogEntry], None]


def static_actor(actor: Optional[Actor]) -> CurrentUserSource:
    """Auth source that always yields `actor` (None means anonymous)."""

    async def resolve() -> Optional[Actor]:
        return actor

    return resolve


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(name: str) -> str:
    """Table and column names are interpolated into SQL; only plain identifiers pass."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


@dataclass(frozen=True)
class RelationshipPredicate:
    """
    Named existence query over two parties.

    `statement` must select at least one row iff the relationship holds and
    bind `:party_a` and `:party_b`.
    """

    name: str
    statement: str
    description: str = ""


COACH_ATHLETE = RelationshipPredicate(
    name="coach_athlete",
    statement="""
        SELECT 1 FROM training_plans
        WHERE coach_id = :party_a
          AND EXISTS (
            SELECT 1 FROM training_plan_athletes
            WHERE plan_id = training_plans.id
              AND athlete_id = :party_b
          )
        LIMIT 1
    """,
    description="coach has a training plan that includes the athlete",
)

SPECIALIST_CLIENT = RelationshipPredicate(
    name="specialist_client",
    statement="""
        SELECT 1 FROM consultations
        WHERE specialist_id = :party_a AND athlete_id = :party_b
        LIMIT 1
    """,
    description="specialist has a consultation with the client",
)


class AuthorizationGuard:
    """Per-request guard. The actor is resolved at most once and cached."""

    def __init__(
        self,
        current_user: CurrentUserSource,
        *,
        engine: Optional[AsyncEngine] = None,
        audit: Optional[AuditSink] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ):
        self._current_user = current_user
        self.engine = engine
        self.audit_sink = audit or log_audit
        # Request metadata stamped onto every audit entry this guard produces
        self.ip_address = ip_address
        self.user_agent = user_agent
        self._actor: Optional[Actor] = None
        self._resolved = False

    async def current_actor(self) -> Optional[Actor]:
        if not self._resolved:
            self._actor = await self._current_user()
            self._resolved = True
        return self._actor

    async def require_actor(self) -> Actor:
        actor = await self.current_actor()
        if actor is None:
            raise AuthenticationError()
        return actor

    async def require_permission(
        self,
        permission: Permission,
        *,
        resource_type: str = "permission",
        resource_id: Optional[str] = None,
    ) -> Actor:
        """
        Single mandatory entry gate.

        Raises:
            AuthenticationError: no resolvable actor
            AuthorizationError: the actor's role does not hold `permission`
        """
        permission = Permission(permission)
        actor = await self.require_actor()

        if not has_permission(actor.role, permission):
            allowed = ", ".join(sorted(r.value for r in roles_for(permission)))
            reason = f"Permission '{permission.value}' requires one of: {allowed}"
            self.audit_denial(
                actor,
                AuditAction.PERMISSION_DENIED,
                resource_type,
                resource_id if resource_id is not None else permission.value,
                reason,
            )
            raise AuthorizationError(reason)

        return actor

    async def require_ownership(self, table: str, resource_id: str, owner_column: str, user_id: str) -> None:
        """
        Verify `table` has a row with id = resource_id owned by user_id.

        Use after require_permission for resource-level scoping.
        """
        statement = (
            f"SELECT 1 FROM {validate_identifier(table)} "
            f"WHERE id = :resource_id AND {validate_identifier(owner_column)} = :user_id"
        )
        row = await query_one(
            statement,
            {"resource_id": str(resource_id), "user_id": str(user_id)},
            engine=self.engine,
        )
        if row is None:
            actor = await self.current_actor()
            if actor is not None:
                self.audit_denial(
                    actor,
                    AuditAction.OWNERSHIP_CHECK_FAILED,
                    table,
                    resource_id,
                    f"User {user_id} does not own {table} resource {resource_id}",
                )
            raise OwnershipError()

    async def require_relationship(self, party_a_id: str, party_b_id: str, predicate: RelationshipPredicate) -> None:
        """Verify a derived relationship (coach-athlete, specialist-client) exists."""
        row = await query_one(
            predicate.statement,
            {"party_a": str(party_a_id), "party_b": str(party_b_id)},
            engine=self.engine,
        )
        if row is None:
            actor = await self.current_actor()
            if actor is not None:
                self.audit_denial(
                    actor,
                    AuditAction.OWNERSHIP_CHECK_FAILED,
                    "relationship",
                    f"{party_a_id}:{party_b_id}",
                    f"No {predicate.name} relationship between {party_a_id} and {party_b_id}",
                )
            raise OwnershipError()

    def require_self(
        self,
        actor: Actor,
        claimed_id: Optional[str],
        *,
        resource_type: str,
        resource_id: Optional[str] = None,
        action: AuditAction = AuditAction.PERMISSION_DENIED,
        reason: str = "Actor id mismatch",
        detail: Optional[str] = None,
    ) -> None:
        """The actor must be acting under their own id (officialId, athleteId, ...)."""
        if claimed_id is None or str(claimed_id) != str(actor.id):
            self.audit_denial(actor, action, resource_type, resource_id, reason)
            raise OwnershipError(detail)

    def audit_denial(
        self,
        actor: Actor,
        action: AuditAction,
        resource_type: str,
        resource_id: Optional[str],
        reason: str,
    ) -> None:
        self.audit_sink(AuditLogEntry(
            actor_id=actor.id,
            actor_role=actor.role,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            result=AuditResult.DENIED,
            denial_reason=reason,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        ))
        logger.info(
            "Authorization denied",
            extra={"extra_fields": {"action": AuditAction(action).value, "resource_type": resource_type, "role": actor.role}},
        )
