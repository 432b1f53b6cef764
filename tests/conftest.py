"""
Shared fixtures: a throwaway SQLite database, a TestClient, account helpers
and a stubbed OpenAI client.
"""
import os
import asyncio
import tempfile
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

# Settings are read at import time, so the environment goes first
_DB_DIR = tempfile.mkdtemp(prefix="synapse-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["ENABLE_RATE_LIMITING"] = "false"
os.environ["ENABLE_FILE_LOGGING"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ADMIN_SECRET"] = "test-admin-secret"
os.environ["PUBLIC_BASE_URL"] = "https://synapse.test"

from fastapi.testclient import TestClient
from sqlalchemy import update

from app import app
from core.rate_limiting import rate_limiter
from db_config import AsyncSessionLocal, Base, async_engine
from models.models import SubscriptionLevelEnum, User, UserRoleEnum
from services.ai_manager import AIManager, AIRetryConfig, get_ai_manager

ADMIN_SECRET = "test-admin-secret"
PASSWORD = "secret123"


async def _recreate_schema():
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def _update_user(username, **values):
    async with AsyncSessionLocal() as db:
        await db.execute(update(User).where(User.username == username).values(**values))
        await db.commit()


def run(coro):
    """Run a coroutine against the test database from synchronous test code."""
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def fresh_database():
    run(_recreate_schema())
    rate_limiter.reset()
    yield


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as test_client:
        yield test_client


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def signup(client, username, password=PASSWORD, **extra):
    response = client.post("/api/auth/signup", json={"username": username, "password": password, **extra})
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def make_user(client):
    """Sign up ``username`` and return its auth headers, optionally upgraded or made admin."""

    def _make(username="alice", level=None, admin=False, **extra):
        token = signup(client, username, **extra)["token"]
        values = {}
        if level is not None:
            values["subscription_level"] = SubscriptionLevelEnum(level)
        if admin:
            values["role"] = UserRoleEnum.admin
        if values:
            run(_update_user(username, **values))
        return bearer(token)

    return _make


@pytest.fixture
def user_headers(make_user):
    return make_user("alice")


@pytest.fixture
def premium_headers(make_user):
    return make_user("paula", level="Paid")


@pytest.fixture
def tester_headers(make_user):
    return make_user("tessa", level="Tester")


@pytest.fixture
def admin_headers(make_user):
    return make_user("root-admin", admin=True)


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeStream:
    """Async iterator shaped like an OpenAI streaming response."""

    def __init__(self, parts, error=None):
        self.parts = list(parts)
        self.error = error

    def __aiter__(self):
        return self._chunks()

    async def _chunks(self):
        for part in self.parts:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=part))])
        if self.error is not None:
            raise self.error


class FakeOpenAI:
    """
    Stand-in for ``openai.AsyncOpenAI``.

    Chat replies are served from ``replies`` in order; streaming requests
    yield ``stream_parts``.
    """

    def __init__(self):
        self.replies = []
        self.stream_parts = []
        self.stream_error = None
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(side_effect=self._create)))
        self.audio = SimpleNamespace(
            speech=SimpleNamespace(create=AsyncMock(return_value=SimpleNamespace(content=b"ID3-fake-mp3")))
        )
        self.files = SimpleNamespace(create=AsyncMock(return_value=SimpleNamespace(id="file-abc123")))

    async def _create(self, **params):
        if params.get("stream"):
            return FakeStream(self.stream_parts, self.stream_error)
        reply = self.replies.pop(0) if self.replies else ""
        return completion(reply)

    def reply(self, *texts):
        self.replies.extend(texts)

    @property
    def calls(self):
        return [call.kwargs for call in self.chat.completions.create.call_args_list]


@pytest.fixture
def fake_openai():
    fake = FakeOpenAI()
    retry = AIRetryConfig(max_retries=0, base_delay=0, timeout_seconds=5)
    app.dependency_overrides[get_ai_manager] = lambda: AIManager(client=fake, retry_config=retry)
    yield fake
    app.dependency_overrides.pop(get_ai_manager, None)
