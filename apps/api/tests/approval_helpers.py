"""
Approval Test Helpers: seeding, store inspection and an in-memory audit sink.

Usage:
    from tests.approval_helpers import create_user, fetch_user

    official = await create_user(engine, "official")
    athlete = await create_user(engine, "athlete", profile_pending_verification=True)
    ...
    assert (await fetch_user(engine, athlete.id))["profile_verified"] is True
"""
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import Boolean, Date, Integer

from core.authz import Actor
from core.database import query, query_one, sql
from services.audit_logger import AuditAction, AuditLogEntry, AuditResult


class AuditRecorder:
    """Audit sink that keeps entries in memory."""

    def __init__(self):
        self.entries: List[AuditLogEntry] = []

    def __call__(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)

    def find(
        self,
        action: Optional[AuditAction] = None,
        *,
        result: Optional[AuditResult] = None,
        resource_id: Optional[str] = None,
    ) -> List[AuditLogEntry]:
        return [
            e for e in self.entries
            if (action is None or e.action == action)
            and (result is None or e.result == result)
            and (resource_id is None or e.resource_id == str(resource_id))
        ]

    def actions(self) -> List[AuditAction]:
        return [e.action for e in self.entries]

    def clear(self) -> None:
        self.entries.clear()


_INSERT_USER = sql(
    """
    INSERT INTO users
        (id, email, name, role, email_verified, registration_verified, registration_rejected,
         profile_verified, profile_pending_verification, created_at)
    VALUES
        (:id, :email, :name, :role, :email_verified, :registration_verified, :registration_rejected,
         :profile_verified, :profile_pending_verification, CURRENT_TIMESTAMP)
    """,
    email_verified=Boolean(),
    registration_verified=Boolean(),
    registration_rejected=Boolean(),
    profile_verified=Boolean(),
    profile_pending_verification=Boolean(),
)

_BOOLEAN_COLUMNS = (
    "email_verified",
    "registration_verified",
    "registration_rejected",
    "profile_verified",
    "profile_pending_verification",
)


async def create_user(
    engine,
    role: str = "athlete",
    *,
    user_id: Optional[str] = None,
    name: Optional[str] = None,
    **flags: bool,
) -> Actor:
    """Insert a user row and return the matching Actor."""
    user_id = user_id or str(uuid4())
    name = name or f"Test {role.capitalize()}"
    values = {column: False for column in _BOOLEAN_COLUMNS}
    values.update(flags)
    await query(_INSERT_USER, {
        "id": user_id,
        "email": f"{role}_{user_id}@example.com",
        "name": name,
        "role": role,
        **values,
    }, engine=engine)
    return Actor(id=user_id, role=role, name=name, profile_verified=values["profile_verified"])


_SELECT_USER = sql(
    """
    SELECT id, role, email_verified, registration_verified, registration_rejected, rejection_reason,
           verified_by, profile_verified, profile_pending_verification, athlete_type, school_club,
           date_of_birth, national_ranking, district, training_place
    FROM users WHERE id = :id
    """
).columns(date_of_birth=Date(), national_ranking=Integer())


async def fetch_user(engine, user_id: str) -> Optional[Dict[str, Any]]:
    """Read a user row back with booleans normalized (SQLite stores 0/1)."""
    row = await query_one(_SELECT_USER, {"id": user_id}, engine=engine)
    if row is None:
        return None
    for column in _BOOLEAN_COLUMNS:
        row[column] = bool(row[column])
    return row


async def fetch_row(engine, table: str, row_id: str) -> Optional[Dict[str, Any]]:
    return await query_one(f"SELECT * FROM {table} WHERE id = :id", {"id": row_id}, engine=engine)


async def fetch_notifications(engine, user_id: str) -> List[Dict[str, Any]]:
    result = await query(
        "SELECT type, title, message, action_url FROM notifications WHERE user_id = :user_id ORDER BY created_at",
        {"user_id": user_id},
        engine=engine,
    )
    return result.rows


async def count_rows(engine, table: str) -> int:
    row = await query_one(f"SELECT COUNT(*) AS n FROM {table}", engine=engine)
    return int(row["n"])


async def add_training_plan(engine, coach_id: str, athlete_ids: List[str]) -> str:
    """Link a coach to athletes through a training plan."""
    plan_id = str(uuid4())
    await query(
        "INSERT INTO training_plans (id, coach_id, title, created_at) VALUES (:id, :coach_id, 'Base block', CURRENT_TIMESTAMP)",
        {"id": plan_id, "coach_id": coach_id},
        engine=engine,
    )
    for athlete_id in athlete_ids:
        await query(
            "INSERT INTO training_plan_athletes (plan_id, athlete_id) VALUES (:plan_id, :athlete_id)",
            {"plan_id": plan_id, "athlete_id": athlete_id},
            engine=engine,
        )
    return plan_id


async def add_consultation(engine, specialist_id: str, athlete_id: str) -> str:
    consultation_id = str(uuid4())
    await query(
        "INSERT INTO consultations (id, specialist_id, athlete_id, created_at) "
        "VALUES (:id, :specialist_id, :athlete_id, CURRENT_TIMESTAMP)",
        {"id": consultation_id, "specialist_id": specialist_id, "athlete_id": athlete_id},
        engine=engine,
    )
    return consultation_id
