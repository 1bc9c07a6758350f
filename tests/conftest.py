"""Shared fixtures for tutor-sync tests."""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from fastapi.testclient import TestClient

import tutor_sync.db.repository as repo_module
from tutor_sync.api.auth import create_access_token
from tutor_sync.api.deps import get_orchestrator
from tutor_sync.core.errors import StoreUnavailable
from tutor_sync.db import get_engine, init_db
from tutor_sync.db.repository import like_to_regex
from tutor_sync.main import app
from tutor_sync.sync import (
    InMemoryCache,
    MessageStore,
    SQLMessageStore,
    SyncMessage,
    SyncOrchestrator,
)
from tutor_sync.sync.orchestrator import order_messages

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeMessageStore(MessageStore):
    """In-memory MessageStore with switchable failures.

    Attributes:
        fail_loads: Number of upcoming get_by_conversation calls that fail.
        fail_contents: Contents whose create call fails.
        load_gate: If set, get_by_conversation waits on it before answering.
    """

    def __init__(self) -> None:
        self.records: list[SyncMessage] = []
        self.fail_loads = 0
        self.fail_contents: set[str] = set()
        self.load_gate: asyncio.Event | None = None
        self.load_calls = 0
        self.create_calls = 0
        self._next_id = 1

    async def create(self, message: SyncMessage) -> str:
        self.create_calls += 1
        if message.content in self.fail_contents:
            raise StoreUnavailable("create failed", details=message.content)
        message_id = f"msg-{self._next_id}"
        self._next_id += 1
        self.records.append(
            message.with_status(
                "sent", id=message_id, timestamp=message.timestamp or BASE_TIME
            )
        )
        return message_id

    async def get_by_conversation(self, conversation_id: str) -> list[SyncMessage]:
        self.load_calls += 1
        if self.load_gate is not None:
            await self.load_gate.wait()
        if self.fail_loads > 0:
            self.fail_loads -= 1
            raise StoreUnavailable("store down")
        return order_messages(
            [m for m in self.records if m.conversation_id == conversation_id]
        )

    async def get_by_user(self, user_id: str) -> list[SyncMessage]:
        return [m for m in self.records if m.user_id == user_id]

    async def get_by_id(self, message_id: str) -> SyncMessage | None:
        return next((m for m in self.records if m.id == message_id), None)

    async def delete(self, message_id: str) -> bool:
        before = len(self.records)
        self.records = [m for m in self.records if m.id != message_id]
        return len(self.records) < before

    async def delete_content_like(
        self, conversation_id: str, pattern: str, role: str | None = None
    ) -> int:
        matcher = like_to_regex(pattern)
        doomed = [
            m
            for m in self.records
            if m.conversation_id == conversation_id
            and (role is None or m.role == role)
            and matcher.fullmatch(m.content)
        ]
        self.records = [m for m in self.records if m not in doomed]
        return len(doomed)


class FakeClock:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def fake_store() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def temp_db():
    """Create a temporary database and point the global engine at it."""
    original_engine = repo_module._engine
    repo_module._engine = None

    with TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        init_db(db_path)
        engine = get_engine(db_path)
        yield engine

        engine.dispose()
        repo_module._engine = original_engine


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def orchestrator(temp_db) -> SyncOrchestrator:
    """Orchestrator over the temporary database with instant retries."""
    return SyncOrchestrator(
        store=SQLMessageStore(),
        cache=InMemoryCache(),
        sleep=no_sleep,
    )


@pytest.fixture
def client(orchestrator):
    """Test client whose routes use the test orchestrator."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_auth_headers():
    """Build an Authorization header for a given user."""

    def _make(user_id: str = "user-1") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _make


@pytest.fixture
def auth_headers(make_auth_headers) -> dict[str, str]:
    return make_auth_headers("user-1")
