"""
Database connection management with connection pooling.

The store is reached only through parameterized text queries; there is no
ORM session in the request path. `models.py` declares the schema for DDL and
migrations, nothing more.

Provides:
- get_engine()          process-wide AsyncEngine (lazy, pooled)
- query() / query_one() single-statement helpers, auto-committed
- QueryResult           {rows, row_count}
- check_db_connection() health probe
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import logging
from sqlalchemy import bindparam, event, text
from sqlalchemy.sql.elements import TextClause
from sqlalchemy.sql.selectable import TextualSelect
from sqlalchemy.types import TypeEngine
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Optional[AsyncEngine] = None


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


def create_engine_from_url(url: str, **overrides: Any) -> AsyncEngine:
    """
    Build an AsyncEngine with the configured pool.

    SQLite (used by the test suite) keeps SQLAlchemy's default pool; every
    other backend gets the sized queue pool from settings.
    """
    options: Dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.DB_POOL_SIZE,  # Number of connections to maintain
            max_overflow=settings.DB_MAX_OVERFLOW,  # Additional connections beyond pool_size
            pool_timeout=settings.DB_POOL_TIMEOUT,  # Seconds to wait for connection
            pool_recycle=settings.DB_POOL_RECYCLE,  # Recycle connections after this many seconds
        )
    options.update(overrides)
    engine = create_async_engine(url, **options)
    _attach_pool_listeners(engine)
    return engine


def _attach_pool_listeners(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "checkout")
    def receive_checkout(dbapi_conn, connection_record, connection_proxy):
        """Log when connection is checked out from pool."""
        logger.debug("Connection checked out from pool")

    @event.listens_for(engine.sync_engine, "checkin")
    def receive_checkin(dbapi_conn, connection_record):
        """Log when connection is returned to pool."""
        logger.debug("Connection returned to pool")


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine_from_url(settings.database_url)
    return _engine


async def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def sql(statement: str, **bind_types: TypeEngine) -> TextClause:
    """
    text() with typed bind parameters.

    Drivers such as asyncpg refuse untyped datetimes, dates, JSON payloads
    and NULLs whose type cannot be inferred; naming the type here keeps the
    statement portable across backends.
    """
    clause = text(statement)
    if bind_types:
        clause = clause.bindparams(*(bindparam(name, type_=t) for name, t in bind_types.items()))
    return clause


Statement = Union[str, TextClause, TextualSelect]


async def execute(conn: AsyncConnection, statement: Statement, params: Optional[Mapping[str, Any]] = None) -> QueryResult:
    """Run one parameterized statement on an open connection."""
    if isinstance(statement, str):
        statement = text(statement)
    result = await conn.execute(statement, dict(params or {}))
    if result.returns_rows:
        rows = [dict(row._mapping) for row in result.fetchall()]
        return QueryResult(rows=rows, row_count=len(rows))
    return QueryResult(rows=[], row_count=max(result.rowcount or 0, 0))


async def query(
    statement: Statement,
    params: Optional[Mapping[str, Any]] = None,
    *,
    engine: Optional[AsyncEngine] = None,
) -> QueryResult:
    """
    Run a single statement on a pooled connection and commit it.

    Use `core.transaction.with_transaction` for anything spanning more than
    one write.
    """
    engine = engine or get_engine()
    try:
        async with engine.begin() as conn:
            return await execute(conn, statement, params)
    except Exception:
        logger.error("Database query error", extra={"extra_fields": {"sql": str(statement)}})
        raise


async def query_one(
    statement: Statement,
    params: Optional[Mapping[str, Any]] = None,
    *,
    engine: Optional[AsyncEngine] = None,
) -> Optional[Dict[str, Any]]:
    result = await query(statement, params, engine=engine)
    return result.first()


async def check_db_connection(engine: Optional[AsyncEngine] = None) -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        async with (engine or get_engine()).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
