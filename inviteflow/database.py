"""Engine and session management for InviteFlow."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker

from .config import settings

DATABASE_URL = f"sqlite:///{settings.database_path}"

# Seconds a writer waits on a locked SQLite file before giving up.
SQLITE_BUSY_TIMEOUT = 15


def build_engine(url: str, **kwargs: Any) -> Engine:
    """Create an engine with foreign keys enforced on every SQLite connection."""
    connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}
    connect_args.update(kwargs.pop("connect_args", {}))
    new_engine = create_engine(url, connect_args=connect_args, future=True, **kwargs)

    @event.listens_for(new_engine, "connect")
    def _enable_foreign_keys(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return new_engine


def config_safe_url(bind: Engine) -> str:
    """The engine URL with ``%`` doubled, for ConfigParser-backed settings."""
    return bind.url.render_as_string(hide_password=False).replace("%", "%%")


def make_session_factory(bind: Engine) -> scoped_session:
    return scoped_session(
        sessionmaker(
            bind=bind,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )


engine = build_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)


@contextmanager
def get_session():
    """Yield a session that commits on success and rolls back on error."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
