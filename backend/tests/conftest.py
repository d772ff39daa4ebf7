"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterable, Iterator

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext
from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app import database
from app.config import get_settings
from app.core import security
from app.core.storage import get_image_store
from app.database import get_db
from app.main import app
from app.models import (
    Account,
    Base,
    Channel,
    ChannelPermission,
    ChannelType,
    DmStatus,
    Friend,
    FriendStatus,
    Inbox,
    Server,
    ServerMember,
    ServerRole,
    User,
)
from app.services.cache import get_cache
from app.services.rate_limit import get_rate_limiter
from hearth.realtime import get_registry

security.pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"], deprecated="auto", pbkdf2_sha256__default_rounds=1000
)


class DummyConnection:
    """Stands in for a websocket and records what the broadcaster sends."""

    def __init__(self, user_id: int, connection_id: str | None = None) -> None:
        self.id = connection_id or f"socket-{user_id}"
        self.user_id = user_id
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    async def close(self) -> None:
        self.closed = True

    def received(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


class DataFactory:
    """Creates rows through short-lived sessions and returns their ids."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._counter = 0

    def user(
        self,
        username: str = "user",
        *,
        password: str = "password",
        email: str | None = None,
        badges: int = 0,
        dm_status: DmStatus = DmStatus.OPEN,
        email_confirmed: bool = False,
    ) -> int:
        self._counter += 1
        with self._session_factory() as session:
            user = User(
                username=username,
                tag=f"{self._counter:04d}",
                badges=badges,
                dm_status=dm_status,
            )
            user.account = Account(
                email=email or f"{username}{self._counter}@example.com",
                hashed_password=security.get_password_hash(password),
                email_confirmed=email_confirmed,
            )
            session.add(user)
            session.commit()
            return user.id

    def token(self, user_id: int) -> str:
        with self._session_factory() as session:
            version = session.execute(
                select(Account.password_version).where(Account.user_id == user_id)
            ).scalar_one()
        return security.generate_token(user_id, version)

    def server(self, owner_id: int, *, default_permissions: int = 0, name: str = "Server") -> int:
        with self._session_factory() as session:
            server = Server(name=name, owner_id=owner_id)
            session.add(server)
            session.flush()
            default_role = ServerRole(server_id=server.id, name="everyone", permissions=default_permissions)
            session.add(default_role)
            session.flush()
            server.default_role_id = default_role.id
            session.add(ServerMember(server_id=server.id, user_id=owner_id))
            session.commit()
            return server.id

    def role(self, server_id: int, permissions: int, name: str = "role") -> int:
        with self._session_factory() as session:
            role = ServerRole(server_id=server_id, name=name, permissions=permissions, order=1)
            session.add(role)
            session.commit()
            return role.id

    def member(self, server_id: int, user_id: int, role_ids: Iterable[int] = ()) -> int:
        with self._session_factory() as session:
            member = ServerMember(server_id=server_id, user_id=user_id)
            member.roles = [session.get(ServerRole, role_id) for role_id in role_ids]
            session.add(member)
            session.commit()
            return member.id

    def channel(
        self,
        server_id: int | None,
        *,
        permissions: int = ChannelPermission.SEND_MESSAGE,
        type: ChannelType = ChannelType.SERVER_TEXT,
        name: str = "general",
    ) -> int:
        with self._session_factory() as session:
            channel = Channel(server_id=server_id, name=name, type=type, permissions=permissions)
            session.add(channel)
            session.commit()
            return channel.id

    def dm(self, user_id: int, recipient_id: int, *, recipient_closed: bool = False) -> int:
        with self._session_factory() as session:
            channel = Channel(type=ChannelType.DM_TEXT, created_by_id=user_id)
            session.add(channel)
            session.flush()
            session.add_all(
                [
                    Inbox(channel_id=channel.id, created_by_id=user_id, recipient_id=recipient_id),
                    Inbox(
                        channel_id=channel.id,
                        created_by_id=recipient_id,
                        recipient_id=user_id,
                        closed=recipient_closed,
                    ),
                ]
            )
            session.commit()
            return channel.id

    def relation(self, user_id: int, recipient_id: int, status: FriendStatus) -> None:
        with self._session_factory() as session:
            session.add(Friend(user_id=user_id, recipient_id=recipient_id, status=status))
            session.commit()


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

    return sessionmaker(bind=test_engine, future=True, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def factory(session_factory) -> DataFactory:
    return DataFactory(session_factory)


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch, tmp_path) -> Iterator[None]:
    """Fresh caches, limiter windows, image store and connection registry per test."""

    settings = get_settings()
    monkeypatch.setattr(settings, "media_root", tmp_path / "media")
    monkeypatch.setattr(settings, "dev_mode", False)
    for cached in (get_cache, get_rate_limiter, get_image_store):
        cached.cache_clear()
    get_registry().clear()
    yield
    for cached in (get_cache, get_rate_limiter, get_image_store):
        cached.cache_clear()
    get_registry().clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def connect():
    """Register a fake realtime connection for ``user_id`` in ``rooms``."""

    def _connect(user_id: int, *rooms: str, connection_id: str | None = None) -> DummyConnection:
        connection = DummyConnection(user_id, connection_id)
        registry = get_registry()
        registry.register(connection)
        registry.join(connection.id, *rooms)
        return connection

    return _connect


@pytest.fixture()
def client(session_factory, monkeypatch) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the database dependency overridden."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(database, "SessionLocal", session_factory)
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
