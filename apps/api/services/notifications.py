"""
Notification sink.

Appends rows to `notifications`; delivery is someone else's problem. The
approval workflows call this only after their transaction has committed,
and treat it as best-effort: a failed insert is logged and never rolls back
or fails the decision it describes.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.ext.asyncio import AsyncEngine

from core.database import get_engine, query, sql

logger = logging.getLogger(__name__)

_INSERT_NOTIFICATION = sql(
    """
    INSERT INTO notifications (id, user_id, type, title, message, action_url, read, created_at)
    VALUES (:id, :user_id, :type, :title, :message, :action_url, :read, :created_at)
    """,
    action_url=String(),
    read=Boolean(),
    created_at=DateTime(timezone=True),
)


class Notifier:
    def __init__(self, engine: Optional[AsyncEngine] = None):
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine or get_engine()

    async def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> bool:
        """Insert one notification. Returns False (and logs) on failure."""
        try:
            await query(
                _INSERT_NOTIFICATION,
                {
                    "id": str(uuid4()),
                    "user_id": str(user_id),
                    "type": type,
                    "title": title,
                    "message": message,
                    "action_url": action_url,
                    "read": False,
                    "created_at": datetime.now(timezone.utc),
                },
                engine=self.engine,
            )
            return True
        except Exception as e:
            logger.warning(
                f"Failed to create notification: {e}",
                extra={"extra_fields": {"notification_type": type, "user_id": str(user_id)}},
            )
            return False

    async def notify_many(
        self,
        user_ids: Iterable[str],
        type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> int:
        """Fan out to several users. Returns how many inserts succeeded."""
        sent = 0
        for user_id in user_ids:
            if await self.notify(user_id, type, title, message, action_url):
                sent += 1
        return sent

    async def notify_role(
        self,
        role: str,
        type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        *,
        verified_only: bool = False,
    ) -> int:
        """Fan out to every user holding `role` (optionally only profile-verified ones)."""
        statement = "SELECT id FROM users WHERE role = :role"
        params = {"role": str(getattr(role, "value", role))}
        if verified_only:
            statement = sql(statement + " AND profile_verified = :verified", verified=Boolean())
            params["verified"] = True
        try:
            result = await query(statement, params, engine=self.engine)
        except Exception as e:
            logger.warning(f"Failed to resolve notification recipients for role {params['role']}: {e}")
            return 0
        return await self.notify_many([row["id"] for row in result.rows], type, title, message, action_url)
