from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple
from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ally.core.rate_limit import reset_all_limiters
from ally.db import models  # noqa: F401  ensure models are loaded
from ally.db.base import Base
from ally.db.deps import get_db
from ally.main import app


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield TestingSessionLocal
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    reset_all_limiters()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    reset_all_limiters()


@pytest.fixture()
def sign_in(client) -> Callable[..., Tuple[Dict[str, str], UUID]]:
    """Issue a session and return (headers, user_id)."""

    def _sign_in(user_id: Optional[UUID] = None) -> Tuple[Dict[str, str], UUID]:
        body = {"user_id": str(user_id)} if user_id else {}
        response = client.post("/auth/sessions", json=body)
        assert response.status_code == 201, response.text
        data = response.json()
        return {"Authorization": f"Bearer {data['token']}"}, UUID(data["user_id"])

    return _sign_in


@pytest.fixture()
def auth(sign_in) -> Tuple[Dict[str, str], UUID]:
    return sign_in()
