# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import AsyncIterator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["FANOUT_BACKEND"] = "memory"

from privchat.api.v1.dependencies import get_publisher  # noqa: E402
from privchat.db.session import Base  # noqa: E402
from privchat.db.session import get_session as app_get_session  # noqa: E402
from privchat.main import app as fastapi_app  # noqa: E402
from privchat.models import AppSession, User  # noqa: E402
from privchat.services.conversations import ConversationService  # noqa: E402
from privchat.services.crypto import MessageCipher  # noqa: E402
from privchat.services.pipeline import PrivateChatPipeline  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite://"
START_TIME = 1_700_000_000


class RecordingPublisher:
    """Publisher stub that keeps every event it is handed."""

    def __init__(self) -> None:
        self.events: list[tuple[int, str, dict[str, Any]]] = []

    async def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        self.events.append((user_id, event, payload))

    def names_for(self, user_id: int) -> list[str]:
        return [event for target, event, _ in self.events if target == user_id]

    def payloads(self, user_id: int, event: str) -> list[dict[str, Any]]:
        return [
            payload
            for target, name, payload in self.events
            if target == user_id and name == event
        ]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@pytest.fixture()
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def users(db_session: AsyncSession) -> dict[int, User]:
    """Three users, each with an opaque session token ``token-<id>``."""
    people = {
        1: User(user_id=1, username="alice", first_name="Alice", last_name="Archer",
                avatar="a.png", lastseen=START_TIME, status=0),
        2: User(user_id=2, username="bob", first_name="", last_name="",
                avatar="b.png", lastseen=START_TIME, status=0),
        3: User(user_id=3, username="carol", first_name="Carol", last_name="Cole",
                avatar="c.png", lastseen=START_TIME, status=1),
    }
    db_session.add_all(people.values())
    db_session.add_all(
        AppSession(session_id=f"token-{user_id}", user_id=user_id) for user_id in people
    )
    await db_session.commit()
    return people


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cipher() -> MessageCipher:
    return MessageCipher()


@pytest.fixture()
def pipeline(
    db_session: AsyncSession,
    publisher: RecordingPublisher,
    cipher: MessageCipher,
    clock: FakeClock,
) -> PrivateChatPipeline:
    return PrivateChatPipeline(db_session, publisher, cipher=cipher, clock=clock)


@pytest.fixture()
def conversations(
    db_session: AsyncSession,
    publisher: RecordingPublisher,
    cipher: MessageCipher,
    clock: FakeClock,
) -> ConversationService:
    return ConversationService(db_session, publisher, cipher=cipher, clock=clock)


@pytest.fixture()
async def client(
    db_session: AsyncSession, publisher: RecordingPublisher
) -> AsyncIterator[AsyncClient]:
    async def _get_session_override() -> AsyncIterator[AsyncSession]:
        yield db_session

    fastapi_app.dependency_overrides[app_get_session] = _get_session_override
    fastapi_app.dependency_overrides[get_publisher] = lambda: publisher
    try:
        transport = ASGITransport(app=fastapi_app)
        async with AsyncClient(transport=transport, base_url="http://test") as test_client:
            yield test_client
    finally:
        fastapi_app.dependency_overrides.pop(app_get_session, None)
        fastapi_app.dependency_overrides.pop(get_publisher, None)
