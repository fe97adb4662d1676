"""
Authentication dependencies.

The auth source turns a bearer JWT into an Actor by loading the `users` row
named by the token's `sub` claim. Resolution is lazy: the guard awaits it on
the first permission check, so a missing or invalid token surfaces as
AuthenticationError from the guard rather than from the dependency.

Provides FastAPI dependencies for:
- the engine (overridable in tests)
- the audit sink (overridable in tests)
- a per-request AuthorizationGuard
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncEngine

from core.authz import Actor, AuditSink, AuthorizationGuard, CurrentUserSource
from core.database import get_engine, query_one
from core.security import get_user_id_from_token
from services.audit_logger import log_audit

logger = logging.getLogger(__name__)

# auto_error=False: missing credentials are reported by the guard as 401, not 403
security = HTTPBearer(auto_error=False)

_SELECT_ACTOR = """
    SELECT id, role, email, name, profile_verified
    FROM users
    WHERE id = :id
"""


async def load_actor(user_id: str, *, engine: Optional[AsyncEngine] = None) -> Optional[Actor]:
    """Load the Actor for `user_id`, or None when no such user exists."""
    row = await query_one(_SELECT_ACTOR, {"id": str(user_id)}, engine=engine)
    if row is None:
        return None
    return Actor(
        id=str(row["id"]),
        role=row["role"],
        email=row.get("email"),
        name=row.get("name"),
        profile_verified=bool(row.get("profile_verified")),
    )


def token_user_source(
    credentials: Optional[HTTPAuthorizationCredentials],
    *,
    engine: Optional[AsyncEngine] = None,
) -> CurrentUserSource:
    async def resolve() -> Optional[Actor]:
        if credentials is None:
            return None
        user_id = get_user_id_from_token(credentials.credentials)
        if not user_id:
            logger.debug("Rejected bearer token")
            return None
        return await load_actor(user_id, engine=engine)

    return resolve


def get_db_engine() -> AsyncEngine:
    return get_engine()


def get_audit_sink() -> AuditSink:
    return log_audit


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request headers (handles proxies)."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return None


def get_guard(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> AuthorizationGuard:
    """
    Per-request authorization guard.

    Usage:
        @router.post("/approve")
        async def approve(guard: AuthorizationGuard = Depends(get_guard)):
            actor = await guard.require_permission(Permission.APPROVE_REGISTRATION)
    """
    return AuthorizationGuard(
        token_user_source(credentials, engine=engine),
        engine=engine,
        audit=audit,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
