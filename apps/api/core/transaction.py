"""
Transaction wrapper.

All-or-nothing execution for multi-statement mutations (approval workflows,
read-recompute-write aggregates). A caller hands over a unit of work; the
wrapper owns the whole checkout -> begin -> commit/rollback -> release cycle
and answers with a TransactionResult instead of raising, so call sites
branch on `result.success`.

Guarantees:
- isolation level from settings (SERIALIZABLE by default)
- rollback on any exception raised by the unit of work
- the connection is returned to the pool exactly once on every path
- no retries; a serialization failure is reported like any other failure

Usage:
    async def approve(tx: TransactionClient):
        await tx.query("UPDATE users SET ... WHERE id = :id", {"id": user_id})
        return await tx.query_one("SELECT ... WHERE id = :id", {"id": user_id})

    result = await with_transaction(approve, "approve-registration")
    if not result.success:
        ...
"""
import json
import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Awaitable, Callable, Dict, Generic, Mapping, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from core.config import settings
from core.database import QueryResult, Statement, execute, get_engine

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_transaction_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"tx-{int(time.time() * 1000)}-{suffix}"


@dataclass(frozen=True)
class TransactionResult(Generic[T]):
    """
    Outcome of one with_transaction() call.

    Exactly one of `data` / `error` is meaningful: success=True carries the
    unit of work's return value, success=False carries the exception.
    """

    success: bool
    transaction_id: str
    data: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, transaction_id: str, data: T) -> "TransactionResult[T]":
        return cls(success=True, transaction_id=transaction_id, data=data)

    @classmethod
    def failed(cls, transaction_id: str, error: BaseException) -> "TransactionResult[T]":
        return cls(success=False, transaction_id=transaction_id, error=error)


class TransactionClient:
    """
    Transaction-scoped query client.

    Every statement shares the same connection and isolation level.
    """

    def __init__(self, connection: AsyncConnection, transaction_id: str):
        self._connection = connection
        self.transaction_id = transaction_id

    async def query(self, statement: Statement, params: Optional[Mapping[str, Any]] = None) -> QueryResult:
        return await execute(self._connection, statement, params)

    async def query_one(self, statement: Statement, params: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Single row query (first match or None)."""
        result = await self.query(statement, params)
        return result.first()


UnitOfWork = Callable[[TransactionClient], Awaitable[T]]


def _log_failure(transaction_id: str, label: str, error: BaseException) -> None:
    logger.error(
        json.dumps({
            "level": "TRANSACTION_ERROR",
            "transactionId": transaction_id,
            "label": label,
            "message": str(error),
            "errorType": type(error).__name__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        extra={"extra_fields": {"transaction_id": transaction_id, "label": label}},
    )


async def _rollback(transaction, transaction_id: str) -> None:
    try:
        await transaction.rollback()
    except Exception as rollback_error:
        logger.error(f"Rollback failed for {transaction_id}: {rollback_error}")


async def with_transaction(
    unit_of_work: UnitOfWork,
    label: str = "unnamed",
    *,
    engine: Optional[AsyncEngine] = None,
    isolation_level: Optional[str] = None,
) -> TransactionResult:
    """
    Execute `unit_of_work` inside one database transaction.

    Never raises for failures of the unit of work, the commit, or connection
    acquisition; they all come back as `TransactionResult(success=False)`.
    """
    transaction_id = new_transaction_id()
    engine = engine or get_engine()

    try:
        connection = await engine.connect()
    except Exception as e:
        _log_failure(transaction_id, label, e)
        return TransactionResult.failed(transaction_id, e)

    try:
        transaction = None
        try:
            await connection.execution_options(
                isolation_level=isolation_level or settings.DB_TRANSACTION_ISOLATION
            )
            transaction = await connection.begin()
            data = await unit_of_work(TransactionClient(connection, transaction_id))
            await transaction.commit()
        except Exception as e:
            if transaction is not None and transaction.is_active:
                await _rollback(transaction, transaction_id)
            _log_failure(transaction_id, label, e)
            return TransactionResult.failed(transaction_id, e)

        logger.debug(f"Transaction committed: {label} ({transaction_id})")
        return TransactionResult.ok(transaction_id, data)
    finally:
        try:
            await connection.close()
        except Exception as close_error:
            logger.error(f"Failed to release connection for {transaction_id}: {close_error}")


def transactional(label: str, *, engine: Optional[AsyncEngine] = None):
    """
    Wrap a coroutine function taking a TransactionClient first.

    The wrapped function receives the client plus the caller's arguments and
    returns a TransactionResult:

        approve = transactional("approve-opportunity")(_approve)
        result = await approve(opportunity_id)
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[TransactionResult]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> TransactionResult:
            return await with_transaction(
                lambda tx: func(tx, *args, **kwargs),
                label,
                engine=engine,
            )

        return wrapper

    return decorator
