"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.core.security import create_access_token
from app.database import get_db
from app.main import app
from app.models import Base, User
from palaver.monitoring import realtime_events_total
from app.services.membership import membership_index
from app.services.realtime import create_realtime


class DummyWebSocket:
    """Transport double recording every JSON frame written to it."""

    def __init__(self) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    def types(self) -> list[str]:
        return [frame["type"] for frame in self.sent]


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_shared_state() -> Iterator[None]:
    membership_index.clear()
    realtime_events_total.reset()
    yield
    membership_index.clear()


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory) -> Iterator[TestClient]:
    """Yield a TestClient wired to the test database and a fresh realtime core."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    original_realtime = app.state.realtime
    app.state.realtime = create_realtime(session_factory)
    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
        app.state.realtime = original_realtime


@pytest.fixture()
def make_user(session_factory) -> Callable[..., tuple[int, str]]:
    """Create a user and return its id with a valid access token."""

    def factory(login: str, display_name: str | None = None) -> tuple[int, str]:
        with session_factory() as session:
            user = User(login=login, display_name=display_name or login.title())
            session.add(user)
            session.commit()
            user_id = user.id
        return user_id, create_access_token(user_id)

    return factory


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
