"""Schema creation and Alembic migrations for the InviteFlow database."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect

from .config import settings
from .database import config_safe_url, engine

logger = logging.getLogger("uvicorn.error")


def init_db() -> None:
    upgrade_database(make_backup=False)


def _alembic_config() -> Config:
    script_location = Path(__file__).resolve().parent / "alembic"
    config = Config()
    config.set_main_option("script_location", str(script_location))
    config.set_main_option("sqlalchemy.url", config_safe_url(engine))
    return config


def head_revision() -> str | None:
    return ScriptDirectory.from_config(_alembic_config()).get_current_head()


def current_revision() -> str | None:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def upgrade_database(*, make_backup: bool = True) -> list[str]:
    """Bring the schema to the latest revision.

    Returns the actions taken; an empty list means the database was already
    at head and nothing (not even a backup) was written.
    """
    inspector = inspect(engine)
    has_alembic = inspector.has_table("alembic_version")
    has_events = inspector.has_table("events")
    if has_alembic and current_revision() == head_revision():
        return []

    actions: list[str] = []
    db_path = Path(settings.database_path)
    if make_backup and db_path.exists():
        backup_path = db_path.with_suffix(db_path.suffix + ".bak")
        shutil.copy(db_path, backup_path)
        actions.append(f"Backup created at {backup_path}")

    config = _alembic_config()
    if not has_alembic and not has_events:
        command.upgrade(config, "head")
        actions.append("Ran Alembic upgrade to head (fresh database)")
    elif not has_alembic:
        # Tables created outside Alembic (create_all): baseline them.
        command.stamp(config, "head")
        actions.append("Stamped existing database to Alembic head")
    else:
        command.upgrade(config, "head")
        actions.append("Applied Alembic migrations to head")

    for action in actions:
        logger.info("Database: %s", action)
    return actions
