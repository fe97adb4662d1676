"""
Audit Logger

Immutable trail for every authorization decision and state mutation.
Used for compliance reporting and security review.

Write path (fire-and-forget):
- log_audit(entry) puts the entry on a bounded in-process outbox and returns
  immediately. It never raises and never blocks the request.
- A drain task appends each entry to `audit_logs` once. A failed write is
  reported on the audit error channel and dropped: at-most-once, no retries.
- A full outbox drops the new entry (and reports it) rather than growing.

Read path:
- query_audit_logs(filters)  composable filters, newest first, capped
- get_access_denial_report   every denied decision in a time range
- get_user_activity_report   every action by one actor in a time range
- get_resource_audit_trail   every entry for one resource

The table is append-only: nothing in this module updates or deletes rows.
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import settings
from core.database import get_engine, query, sql
from core.exceptions import ValidationError
from core.logging import AUDIT_CHANNEL, AUDIT_ERROR_CHANNEL

logger = logging.getLogger(__name__)
audit_channel = logging.getLogger(AUDIT_CHANNEL)
audit_error_channel = logging.getLogger(AUDIT_ERROR_CHANNEL)


class AuditAction(str, Enum):
    AUTH_CHECK = "AUTH_CHECK"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    OWNERSHIP_CHECK_FAILED = "OWNERSHIP_CHECK_FAILED"
    RESOURCE_CREATED = "RESOURCE_CREATED"
    RESOURCE_UPDATED = "RESOURCE_UPDATED"
    RESOURCE_DELETED = "RESOURCE_DELETED"
    APPROVAL_GRANTED = "APPROVAL_GRANTED"
    APPROVAL_DENIED = "APPROVAL_DENIED"
    STATUS_CHANGE = "STATUS_CHANGE"
    ROLE_ASSIGNMENT = "ROLE_ASSIGNMENT"
    VERIFICATION_COMPLETED = "VERIFICATION_COMPLETED"
    ERROR_OCCURRED = "ERROR_OCCURRED"


class AuditResult(str, Enum):
    SUCCESS = "success"
    DENIED = "denied"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _freeze(snapshot: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    if snapshot is None:
        return None
    return MappingProxyType(dict(snapshot))


@dataclass(frozen=True)
class AuditLogEntry:
    """
    One immutable audit fact.

    status_before / status_after are small snapshots of the fields relevant
    to the decision, never full entity dumps. The timestamp is captured when
    the entry is built, not when the outbox gets around to writing it.
    """

    actor_id: str
    actor_role: str
    action: AuditAction
    resource_type: str
    result: AuditResult
    resource_id: Optional[str] = None
    denial_reason: Optional[str] = None
    status_before: Optional[Mapping[str, Any]] = None
    status_after: Optional[Mapping[str, Any]] = None
    error_message: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self):
        object.__setattr__(self, "action", AuditAction(self.action))
        object.__setattr__(self, "result", AuditResult(self.result))
        object.__setattr__(self, "status_before", _freeze(self.status_before))
        object.__setattr__(self, "status_after", _freeze(self.status_after))
        if self.resource_id is not None:
            object.__setattr__(self, "resource_id", str(self.resource_id))

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "actor_id": str(self.actor_id),
            "actor_role": str(getattr(self.actor_role, "value", self.actor_role)),
            "action": self.action.value,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "result": self.result.value,
            "denial_reason": self.denial_reason,
            "status_before": dict(self.status_before) if self.status_before is not None else None,
            "status_after": dict(self.status_after) if self.status_after is not None else None,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "error_message": self.error_message,
        }


_INSERT_AUDIT_LOG = sql(
    """
    INSERT INTO audit_logs
        (id, timestamp, actor_id, actor_role, action, resource_type, resource_id,
         result, denial_reason, status_before, status_after, ip_address, user_agent, error_message)
    VALUES
        (:id, :timestamp, :actor_id, :actor_role, :action, :resource_type, :resource_id,
         :result, :denial_reason, :status_before, :status_after, :ip_address, :user_agent, :error_message)
    """,
    timestamp=DateTime(timezone=True),
    resource_id=String(),
    denial_reason=String(),
    status_before=JSON(),
    status_after=JSON(),
    ip_address=String(),
    user_agent=String(),
    error_message=String(),
)


def _anonymize_id(actor_id: str) -> str:
    """Hash actor ID for privacy in operational logs."""
    return hashlib.sha256(str(actor_id).encode()).hexdigest()[:12]


def _report_failure(message: str, entry: Optional[AuditLogEntry], error: Optional[BaseException] = None) -> None:
    """Operational error channel. Must never raise."""
    try:
        audit_error_channel.error(json.dumps({
            "level": "AUDIT_ERROR",
            "message": message,
            "error": str(error) if error is not None else None,
            "action": entry.action.value if entry is not None else None,
            "resource_type": entry.resource_type if entry is not None else None,
            "timestamp": _utcnow().isoformat(),
        }))
    except Exception:
        logger.exception("Audit error channel failed")


class AuditOutbox:
    """
    Bounded best-effort outbox in front of the audit_logs table.

    The queue and drain task live on the event loop that first uses the
    outbox; if a later caller runs on another loop (new test, reloaded
    worker) they are rebuilt there.
    """

    def __init__(self, engine: Optional[AsyncEngine] = None, *, maxsize: Optional[int] = None):
        self._engine = engine
        self.maxsize = maxsize or settings.AUDIT_QUEUE_MAXSIZE
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.written = 0
        self.failed = 0
        self.dropped = 0

    @property
    def engine(self) -> AsyncEngine:
        return self._engine or get_engine()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def _ensure_worker(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
            self._loop = loop
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain(self._queue), name="audit-outbox")
        return self._queue

    def start(self) -> None:
        self._ensure_worker()

    def log_audit(self, entry: AuditLogEntry) -> None:
        """Schedule `entry` for writing. Returns immediately; never raises."""
        try:
            self._ensure_worker().put_nowait(entry)
        except asyncio.QueueFull:
            self.dropped += 1
            _report_failure("Audit outbox full, entry dropped", entry)
        except Exception as e:
            self.dropped += 1
            _report_failure("Audit entry could not be scheduled", entry, e)

    async def _drain(self, queue: asyncio.Queue) -> None:
        while True:
            entry = await queue.get()
            try:
                await self.write(entry)
                self.written += 1
            except Exception as e:
                self.failed += 1
                _report_failure("Failed to write audit log", entry, e)
            finally:
                queue.task_done()

    async def write(self, entry: AuditLogEntry) -> None:
        await query(_INSERT_AUDIT_LOG, entry.to_row(), engine=self.engine)
        audit_channel.info(json.dumps({
            "timestamp": entry.timestamp.isoformat(),
            "action": entry.action.value,
            "actor_hash": _anonymize_id(entry.actor_id),
            "actor_role": str(getattr(entry.actor_role, "value", entry.actor_role)),
            "resource_type": entry.resource_type,
            "result": entry.result.value,
        }))

    async def flush(self) -> None:
        """Wait until every scheduled entry has been written or dropped."""
        if self._queue is not None and self._loop is asyncio.get_running_loop():
            await self._queue.join()

    async def stop(self) -> None:
        await self.flush()
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass


_default_outbox = AuditOutbox()


def get_audit_outbox() -> AuditOutbox:
    return _default_outbox


def log_audit(entry: AuditLogEntry) -> None:
    """Log an audit event. Fire-and-forget (no await, no return value)."""
    _default_outbox.log_audit(entry)


# =============================================================================
# READ API
# =============================================================================

@dataclass
class AuditFilters:
    actor_id: Optional[str] = None
    action: Optional[AuditAction] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    result: Optional[AuditResult] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    limit: Optional[int] = None


_SELECT_COLUMNS = (
    "id, timestamp, actor_id, actor_role, action, resource_type, resource_id, "
    "result, denial_reason, status_before, status_after, ip_address, user_agent, error_message"
)


async def query_audit_logs(
    filters: Optional[AuditFilters] = None,
    *,
    engine: Optional[AsyncEngine] = None,
) -> List[Dict[str, Any]]:
    """
    Query audit logs (for compliance reporting).

    Filters compose with AND. Results are ordered newest first and capped at
    AUDIT_QUERY_DEFAULT_LIMIT rows unless an explicit limit is given.
    """
    filters = filters or AuditFilters()
    conditions: List[str] = []
    params: Dict[str, Any] = {}
    bind_types: Dict[str, Any] = {"limit": Integer()}

    if filters.actor_id:
        conditions.append("actor_id = :actor_id")
        params["actor_id"] = str(filters.actor_id)
    if filters.action:
        conditions.append("action = :action")
        params["action"] = AuditAction(filters.action).value
    if filters.resource_type:
        conditions.append("resource_type = :resource_type")
        params["resource_type"] = filters.resource_type
    if filters.resource_id:
        conditions.append("resource_id = :resource_id")
        params["resource_id"] = str(filters.resource_id)
    if filters.result:
        conditions.append("result = :result")
        params["result"] = AuditResult(filters.result).value
    if filters.from_date:
        conditions.append("timestamp >= :from_date")
        params["from_date"] = filters.from_date
        bind_types["from_date"] = DateTime(timezone=True)
    if filters.to_date:
        conditions.append("timestamp <= :to_date")
        params["to_date"] = filters.to_date
        bind_types["to_date"] = DateTime(timezone=True)

    if filters.limit is not None and filters.limit <= 0:
        raise ValidationError("limit must be a positive integer", field="limit")
    params["limit"] = filters.limit or settings.AUDIT_QUERY_DEFAULT_LIMIT

    where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    statement = sql(
        f"SELECT {_SELECT_COLUMNS} FROM audit_logs {where_clause} ORDER BY timestamp DESC LIMIT :limit",
        **bind_types,
    ).columns(
        timestamp=DateTime(timezone=True),
        status_before=JSON(),
        status_after=JSON(),
    )
    result = await query(statement, params, engine=engine)
    return result.rows


async def get_access_denial_report(
    from_date: datetime,
    to_date: datetime,
    *,
    engine: Optional[AsyncEngine] = None,
) -> List[Dict[str, Any]]:
    """Compliance report: every denied decision in the date range."""
    return await query_audit_logs(
        AuditFilters(
            result=AuditResult.DENIED,
            from_date=from_date,
            to_date=to_date,
            limit=settings.AUDIT_REPORT_LIMIT,
        ),
        engine=engine,
    )


async def get_user_activity_report(
    actor_id: str,
    from_date: datetime,
    to_date: datetime,
    *,
    engine: Optional[AsyncEngine] = None,
) -> List[Dict[str, Any]]:
    """Security report: all actions by a specific actor."""
    return await query_audit_logs(
        AuditFilters(
            actor_id=actor_id,
            from_date=from_date,
            to_date=to_date,
            limit=settings.AUDIT_REPORT_LIMIT,
        ),
        engine=engine,
    )


async def get_resource_audit_trail(
    resource_type: str,
    resource_id: str,
    *,
    engine: Optional[AsyncEngine] = None,
) -> List[Dict[str, Any]]:
    """Compliance report: every entry for one resource."""
    return await query_audit_logs(
        AuditFilters(
            resource_type=resource_type,
            resource_id=resource_id,
            limit=settings.AUDIT_REPORT_LIMIT,
        ),
        engine=engine,
    )
