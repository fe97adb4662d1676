"""
Pytest configuration and fixtures

Every test gets its own SQLite database file (aiosqlite driver) with the
schema created from models.Base, so nothing is shared between tests.
Workflows are driven through an AuthorizationGuard bound to a static actor;
audit entries go to an in-memory recorder unless a test opts into the real
outbox.
"""
import os
import sys

import pytest
import pytest_asyncio

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-at-least-32-chars")

from core.authz import AuthorizationGuard, static_actor
from core.database import Base, create_engine_from_url
from services.audit_logger import AuditOutbox
from tests.approval_helpers import AuditRecorder
import models  # noqa: F401  registers the tables on Base.metadata


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh file-backed SQLite database with the full schema."""
    eng = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'athletehub.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def outbox(engine):
    """Real audit outbox writing to the test database."""
    box = AuditOutbox(engine)
    box.start()
    yield box
    await box.stop()


@pytest.fixture
def audit():
    return AuditRecorder()


@pytest.fixture
def guard_for(engine, audit):
    """Factory: a guard for `actor` (None means anonymous) on the test database."""

    def make(actor, *, sink=None):
        return AuthorizationGuard(
            static_actor(actor),
            engine=engine,
            audit=sink or audit,
            ip_address="203.0.113.7",
            user_agent="pytest",
        )

    return make
