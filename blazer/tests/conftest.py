"""Shared fixtures: in-memory database, venture factory, and API client."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from blazer.auth import AuthUser, current_user
from blazer.models import Base, Idea, Venture

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture()
def engine():
    """SQLite in-memory database shared across connections via StaticPool."""
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def make_venture(session: Session):
    """Factory persisting a venture for USER_ID in the given state."""
    def _make(state: str = "inactive", user_id: str = USER_ID, **fields) -> Venture:
        if state in ("executing", "reviewed") and "commitment_start_at" not in fields:
            start = datetime(2026, 1, 1, tzinfo=UTC)
            fields.setdefault("commitment_window_days", 14)
            fields.setdefault("commitment_start_at", start)
            fields.setdefault("commitment_end_at", start + timedelta(days=14))
            fields.setdefault("success_metric", "10 paying customers")
        idea = Idea(user_id=user_id, title=fields.pop("title", "Invoice autopilot"))
        session.add(idea)
        session.flush()
        venture = Venture(user_id=user_id, idea_id=idea.id, name=idea.title, venture_state=state, **fields)
        session.add(venture)
        session.commit()
        return venture
    return _make


@pytest.fixture()
def client(session_factory, tmp_path, monkeypatch):
    """FastAPI TestClient on the in-memory database, authenticated as USER_ID."""
    monkeypatch.setenv("BLAZER_DB_PATH", str(tmp_path / "lifespan.db"))
    from blazer.app import app, db_session

    def override_db_session():
        sess = session_factory()
        try:
            yield sess
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()

    app.dependency_overrides[db_session] = override_db_session
    app.dependency_overrides[current_user] = lambda: AuthUser(id=USER_ID, email="founder@example.com")
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    app.dependency_overrides.clear()
