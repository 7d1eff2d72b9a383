from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, inspect as sa_inspect, text
from sqlalchemy.orm import Session, sessionmaker

from blazer.models import Base

log = logging.getLogger(__name__)

_lock = threading.Lock()
_engine = None
_SessionLocal = None

DATA_DIR = Path(__file__).parent / "data"


def default_db_path() -> Path:
    return Path(os.environ.get("BLAZER_DB_PATH") or DATA_DIR / "blazer.db")


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(db_path: str | Path | None = None) -> None:
    global _engine, _SessionLocal
    with _lock:
        if _engine is not None:
            _engine.dispose()
        db_path = Path(db_path) if db_path is not None else default_db_path()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
        event.listen(_engine, "connect", _enable_foreign_keys)
        Base.metadata.create_all(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        _migrate_existing_db(_engine)
        log.info("Database ready at %s", db_path)


def _migrate_existing_db(engine) -> None:
    """Add columns that may be missing in databases created before optimistic locking."""
    inspector = sa_inspect(engine)
    if not inspector.has_table("ventures"):
        return
    columns = {col["name"] for col in inspector.get_columns("ventures")}
    if "version" not in columns:
        with engine.begin() as conn:
            conn.execute(text("ALTER TABLE ventures ADD COLUMN version INTEGER NOT NULL DEFAULT 1"))
    if "metadata" not in columns:
        with engine.begin() as conn:
            conn.execute(text("ALTER TABLE ventures ADD COLUMN metadata TEXT DEFAULT '{}'"))


def get_session() -> Session:
    with _lock:
        if _SessionLocal is None:
            raise RuntimeError("init_db() has not been called")
        factory = _SessionLocal
    return factory()  # type: ignore[misc]


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Context manager providing a session that rolls back on error.

    Usage (MCP server, scripts, etc.)::

        with session_scope() as session:
            ...
    """
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
