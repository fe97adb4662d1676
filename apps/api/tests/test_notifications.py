"""
Notification sink tests: best-effort inserts that never fail a decision.
"""
import logging

import pytest

from core.database import create_engine_from_url, query
from services.approvals import RegistrationWorkflow
from services.notifications import Notifier
from tests.approval_helpers import create_user, fetch_notifications, fetch_user


class TestNotifier:
    @pytest.mark.asyncio
    async def test_notify_inserts_unread_row(self, engine):
        user = await create_user(engine, "athlete")
        assert await Notifier(engine).notify(user.id, "test", "Hello", "World", "/inbox") is True

        [row] = await fetch_notifications(engine, user.id)
        assert row == {"type": "test", "title": "Hello", "message": "World", "action_url": "/inbox"}

    @pytest.mark.asyncio
    async def test_notify_failure_returns_false(self, tmp_path, caplog):
        broken = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        try:
            with caplog.at_level(logging.WARNING, logger="services.notifications"):
                assert await Notifier(broken).notify("U1", "test", "t", "m") is False
        finally:
            await broken.dispose()
        assert any("Failed to create notification" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_notify_role_fans_out(self, engine):
        first = await create_user(engine, "official")
        second = await create_user(engine, "official")
        await create_user(engine, "coach")

        sent = await Notifier(engine).notify_role("official", "broadcast", "Meeting", "At noon")

        assert sent == 2
        assert len(await fetch_notifications(engine, first.id)) == 1
        assert len(await fetch_notifications(engine, second.id)) == 1

    @pytest.mark.asyncio
    async def test_notify_role_verified_only(self, engine):
        verified = await create_user(engine, "specialist", profile_verified=True)
        unverified = await create_user(engine, "specialist")

        sent = await Notifier(engine).notify_role("specialist", "x", "t", "m", verified_only=True)

        assert sent == 1
        assert len(await fetch_notifications(engine, verified.id)) == 1
        assert await fetch_notifications(engine, unverified.id) == []


@pytest.mark.asyncio
async def test_failed_notification_does_not_undo_decision(engine, guard_for):
    official = await create_user(engine, "official")
    await create_user(engine, "athlete", user_id="U1")
    await query("DROP TABLE notifications", engine=engine)

    result = await RegistrationWorkflow(guard_for(official)).approve("U1", official.id)

    assert result["registration_verified"] is True
    assert (await fetch_user(engine, "U1"))["registration_verified"] is True
