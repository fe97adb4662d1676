"""
Migration graph tests: a single head, and the migrated schema matches models.
"""
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect

from core.database import Base
import models  # noqa: F401

API_ROOT = Path(__file__).resolve().parents[1]


def _config(url: str = "") -> Config:
    cfg = Config(str(API_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(API_ROOT / "alembic"))
    if url:
        cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def test_single_head_and_root():
    script = ScriptDirectory.from_config(_config())
    revisions = list(script.walk_revisions())
    assert len(script.get_heads()) == 1
    assert len([r for r in revisions if r.down_revision is None]) == 1


def test_upgrade_creates_model_tables(tmp_path):
    db_path = tmp_path / "migrated.db"
    command.upgrade(_config(f"sqlite+aiosqlite:///{db_path}"), "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names()) - {"alembic_version"}
        assert tables == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            migrated = {c["name"] for c in inspector.get_columns(name)}
            assert migrated == {c.name for c in table.columns}, name
        audit_indexes = {i["name"] for i in inspector.get_indexes("audit_logs")}
        assert "ix_audit_logs_actor_timestamp" in audit_indexes
    finally:
        engine.dispose()
