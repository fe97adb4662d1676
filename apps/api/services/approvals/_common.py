"""
Shared plumbing for the approval workflows.

Every workflow follows the same shape:

    guard.require_permission  ->  load entity  ->  actor-specific authority
    ->  legal transition?  ->  transactional mutation  ->  audit  ->  notify

The base class owns the parts that must behave identically everywhere:
denial auditing, mapping a TransactionResult back into data or a typed
error, and conditional status updates that detect lost races.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, NoReturn, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from core.authz import Actor, AuditSink, AuthorizationGuard
from core.exceptions import InvalidTransitionError, OwnershipError, PlatformError, TransactionFailedError
from core.transaction import TransactionClient, UnitOfWork, with_transaction
from services.audit_logger import AuditAction, AuditLogEntry, AuditResult
from services.notifications import Notifier

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def snapshot(row: Optional[Mapping[str, Any]], *fields: str, booleans: Iterable[str] = ()) -> Dict[str, Any]:
    """Pick the decision-relevant fields of a row. SQLite returns booleans as 0/1."""
    if row is None:
        return {}
    booleans = set(booleans)
    return {f: (bool(row.get(f)) if f in booleans else row.get(f)) for f in fields}


class ApprovalWorkflow:
    """Base class: holds the collaborators every workflow composes."""

    resource_type = "resource"

    def __init__(
        self,
        guard: AuthorizationGuard,
        *,
        engine: Optional[AsyncEngine] = None,
        audit: Optional[AuditSink] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.guard = guard
        self.engine = engine if engine is not None else guard.engine
        self.audit = audit or guard.audit_sink
        self.notifier = notifier or Notifier(self.engine)

    def _audit(
        self,
        actor: Actor,
        action: AuditAction,
        resource_id: Optional[str],
        *,
        result: AuditResult = AuditResult.SUCCESS,
        before: Optional[Mapping[str, Any]] = None,
        after: Optional[Mapping[str, Any]] = None,
        denial_reason: Optional[str] = None,
        error_message: Optional[str] = None,
        resource_type: Optional[str] = None,
    ) -> None:
        self.audit(AuditLogEntry(
            actor_id=actor.id,
            actor_role=actor.role,
            action=action,
            resource_type=resource_type or self.resource_type,
            resource_id=resource_id,
            result=result,
            denial_reason=denial_reason,
            status_before=before,
            status_after=after,
            error_message=error_message,
            ip_address=self.guard.ip_address,
            user_agent=self.guard.user_agent,
        ))

    def _deny(
        self,
        actor: Actor,
        action: AuditAction,
        resource_id: Optional[str],
        reason: str,
        error: PlatformError,
        *,
        before: Optional[Mapping[str, Any]] = None,
    ) -> NoReturn:
        """Record a denied decision, then raise `error`."""
        self._audit(actor, action, resource_id, result=AuditResult.DENIED, denial_reason=reason, before=before)
        raise error

    def _require_party(self, actor: Actor, party_id: Optional[str], resource_id: str, reason: str) -> None:
        """The actor must be the specific party recorded on the entity."""
        if party_id is None or str(party_id) != str(actor.id):
            self._deny(actor, AuditAction.OWNERSHIP_CHECK_FAILED, resource_id, reason, OwnershipError(reason))

    def _require_status(
        self,
        actor: Actor,
        resource_id: str,
        current: Optional[str],
        allowed: Iterable[str],
        action: str,
    ) -> None:
        allowed = tuple(allowed)
        if current not in allowed:
            reason = f"Cannot {action} while status is '{current}'"
            self._deny(
                actor,
                AuditAction.STATUS_CHANGE,
                resource_id,
                reason,
                InvalidTransitionError(reason),
                before={"status": current},
            )

    async def _run(self, unit: UnitOfWork, label: str, *, actor: Actor, resource_id: Optional[str]) -> Any:
        """
        Execute `unit` in one transaction and unwrap its result.

        Client errors raised inside the unit (not found, lost race) come back
        unchanged; anything else becomes TransactionFailedError after an
        ERROR_OCCURRED audit entry.
        """
        result = await with_transaction(unit, label, engine=self.engine)
        if result.success:
            return result.data

        error = result.error
        if isinstance(error, PlatformError) and error.is_client_error:
            if isinstance(error, InvalidTransitionError):
                self._audit(
                    actor,
                    AuditAction.STATUS_CHANGE,
                    resource_id,
                    result=AuditResult.DENIED,
                    denial_reason=error.detail,
                )
            raise error

        self._audit(
            actor,
            AuditAction.ERROR_OCCURRED,
            resource_id,
            result=AuditResult.ERROR,
            error_message=str(error),
        )
        raise TransactionFailedError(result.transaction_id, error) from error

    @staticmethod
    async def _transition(
        tx: TransactionClient,
        statement,
        params: Mapping[str, Any],
        *,
        expected: str,
    ) -> None:
        """
        Run a conditional status UPDATE.

        `statement` must restrict on `status = :expected`; zero affected rows
        means another decision got there first.
        """
        result = await tx.query(statement, {**params, "expected": expected})
        if result.row_count != 1:
            raise InvalidTransitionError(f"Status changed concurrently (expected '{expected}')")

    async def _notify(self, user_id: Optional[str], type: str, title: str, message: str, action_url: Optional[str] = None) -> None:
        """Post-commit, best-effort."""
        if not user_id:
            return
        await self.notifier.notify(user_id, type, title, message, action_url)
