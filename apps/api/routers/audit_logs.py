"""
Audit Log Endpoints (compliance tooling)

GET /v1/audit-logs                                   - Filtered query, newest first.
GET /v1/audit-logs/reports/denials                   - Every denied decision in a range.
GET /v1/audit-logs/reports/actors/{actor_id}         - Everything one actor did in a range.
GET /v1/audit-logs/resources/{resource_type}/{id}    - Full trail of one resource.

All endpoints require VIEW_AUDIT_LOGS. Read-only: the audit table has no
update or delete path.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.authz import AuthorizationGuard
from core.auth import get_guard
from core.permissions import Permission
from schemas import AuditLogListResponse
from services.audit_logger import (
    AuditAction,
    AuditFilters,
    AuditResult,
    get_access_denial_report,
    get_resource_audit_trail,
    get_user_activity_report,
    query_audit_logs,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/audit-logs", tags=["audit-logs"])


def _listing(rows) -> AuditLogListResponse:
    return AuditLogListResponse(logs=rows, count=len(rows))


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    actor_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    result: Optional[AuditResult] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    guard: AuthorizationGuard = Depends(get_guard),
):
    await guard.require_permission(Permission.VIEW_AUDIT_LOGS, resource_type="audit_log")
    rows = await query_audit_logs(
        AuditFilters(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            result=result,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
        ),
        engine=guard.engine,
    )
    return _listing(rows)


@router.get("/reports/denials", response_model=AuditLogListResponse)
async def access_denial_report(
    from_date: datetime,
    to_date: datetime,
    guard: AuthorizationGuard = Depends(get_guard),
):
    await guard.require_permission(Permission.VIEW_AUDIT_LOGS, resource_type="audit_log")
    return _listing(await get_access_denial_report(from_date, to_date, engine=guard.engine))


@router.get("/reports/actors/{actor_id}", response_model=AuditLogListResponse)
async def user_activity_report(
    actor_id: str,
    from_date: datetime,
    to_date: datetime,
    guard: AuthorizationGuard = Depends(get_guard),
):
    await guard.require_permission(Permission.VIEW_AUDIT_LOGS, resource_type="audit_log")
    return _listing(await get_user_activity_report(actor_id, from_date, to_date, engine=guard.engine))


@router.get("/resources/{resource_type}/{resource_id}", response_model=AuditLogListResponse)
async def resource_audit_trail(
    resource_type: str,
    resource_id: str,
    guard: AuthorizationGuard = Depends(get_guard),
):
    await guard.require_permission(Permission.VIEW_AUDIT_LOGS, resource_type="audit_log")
    return _listing(await get_resource_audit_trail(resource_type, resource_id, engine=guard.engine))
