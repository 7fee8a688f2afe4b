"""Database engine and session management for the SQLite mail store.

Calls are synchronous: every mail operation is a short blocking query made on
behalf of a single CLI invocation or agent process.

Key invariants:
- WAL mode so several agents can read while one writes
- busy_timeout gives concurrent writers time to finish instead of failing fast
- The engine is created lazily and can be reset between tests
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlmodel import Session, SQLModel, create_engine

from .config import DatabaseSettings, Settings, clear_settings_cache, get_settings

_logger = logging.getLogger(__name__)

_engine: Engine | None = None
_schema_ready = False
_lock = threading.Lock()


def _build_engine(settings: DatabaseSettings) -> Engine:
    """Build a SQLAlchemy engine tuned for SQLite shared by several agent processes."""
    connect_args: dict[str, Any] = {}
    is_sqlite = "sqlite" in settings.url.lower()

    if is_sqlite:
        # SQLite reports "unable to open database file" when the directory is missing.
        parsed = make_url(settings.url)
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        connect_args = {
            "timeout": 30.0,
            "check_same_thread": False,
        }

    engine = create_engine(
        settings.url,
        echo=settings.echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    if is_sqlite:

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
                cursor.execute("PRAGMA busy_timeout=30000")
            finally:
                cursor.close()

    return engine


def init_engine(settings: Settings | None = None) -> None:
    global _engine
    if _engine is not None:
        return
    resolved = settings or get_settings()
    _engine = _build_engine(resolved.database)


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    assert _engine is not None
    return _engine


def ensure_schema(settings: Settings | None = None) -> None:
    """Create the mail tables from the SQLModel definitions if they do not exist."""
    global _schema_ready
    if _schema_ready:
        return
    with _lock:
        if _schema_ready:
            return
        init_engine(settings)
        SQLModel.metadata.create_all(get_engine())
        _schema_ready = True
        _logger.debug("db.schema_ready", extra={"url": str(get_engine().url)})


@contextmanager
def get_session() -> Iterator[Session]:
    """Provide a session bound to the shared engine with guaranteed close.

    ``expire_on_commit`` is off so rows stay readable after the session ends.
    """
    ensure_schema()
    session = Session(get_engine(), expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()


def reset_database_state() -> None:
    """Test helper to reset global engine state."""
    global _engine, _schema_ready
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _schema_ready = False
    # Tests frequently mutate env vars; keep settings cache in sync with DB resets.
    clear_settings_cache()
