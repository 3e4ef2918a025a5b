"""Shared test fixtures and configuration."""
import asyncio
import json
import os
from typing import Any, Dict, List, Optional, Union

import pytest
from unittest.mock import Mock, AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool, NullPool

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "sk-instructor-test")

from app.main import app
from app.db.database import get_db
from app.db.models import Base
from app.core.dependencies import get_relay_engine
from app.services.persistence.store import ConversationStore, DatabaseConversationStore
from app.services.relay.engine import RelayEngine
from app.services.relay.models import CompletionResult, ToolCall
from app.services.relay.webhooks import ToolWebhookClient
from app.services.session_config.base import SessionConfig, SessionConfigProvider
from app.services.session_config.database import DatabaseConfigProvider


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DEFAULT_SYSTEM_PROMPT = "You are a helpful voice assistant."


class FakeCompletionClient:
    """Scripted stand-in for LanguageModelClient."""

    def __init__(self, responses: Optional[List[Union[CompletionResult, Exception]]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.api_key: Optional[str] = None
        self.closed = False

    async def aclose(self):
        self.closed = True

    async def complete(self, system_prompt, history, tools=None):
        self.calls.append(
            {"system_prompt": system_prompt, "history": list(history), "tools": list(tools or [])}
        )
        if not self.responses:
            return CompletionResult(content="OK")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingStore(ConversationStore):
    """ConversationStore that records calls in memory."""

    def __init__(self, fail_on: Optional[set] = None, gate: Optional[asyncio.Event] = None):
        self.fail_on = fail_on or set()
        self.gate = gate
        self.sessions: List[Dict[str, Any]] = []
        self.turns: List[Dict[str, Any]] = []
        self.ended: List[Dict[str, Any]] = []

    async def _maybe_block(self, operation: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} unavailable")

    async def create_session(self, session_key, call_metadata):
        await self._maybe_block("create_session")
        self.sessions.append({"session_key": session_key, **call_metadata})
        return len(self.sessions)

    async def append_turn(self, session_handle, turn_number, role, content, metadata=None):
        await self._maybe_block("append_turn")
        self.turns.append(
            {
                "session_handle": session_handle,
                "turn_number": turn_number,
                "role": role,
                "content": content,
                "metadata": metadata,
            }
        )

    async def end_session(self, session_handle, turn_pair_count):
        await self._maybe_block("end_session")
        self.ended.append({"session_handle": session_handle, "turn_pair_count": turn_pair_count})


class StaticConfigProvider(SessionConfigProvider):
    """Config provider serving a fixed mapping."""

    def __init__(self, configs: Optional[Dict[str, SessionConfig]] = None, error: Optional[Exception] = None):
        self.configs = configs or {}
        self.error = error
        self.lookups: List[str] = []

    async def get_config(self, session_key):
        self.lookups.append(session_key)
        if self.error is not None:
            raise self.error
        return self.configs.get(session_key)


def make_tool_call(name: str, call_id: str, arguments: str = "{}") -> ToolCall:
    """Build a ToolCall the way the completion client parses one."""
    return ToolCall(id=call_id, name=name, arguments=json.loads(arguments), raw_arguments=arguments)


def build_engine(
    provider: Optional[SessionConfigProvider] = None,
    store: Optional[ConversationStore] = None,
    clients: Optional[Dict[str, FakeCompletionClient]] = None,
    default_client: Optional[FakeCompletionClient] = None,
    default_api_key: Optional[str] = "sk-instructor-test",
    webhook_client: Optional[ToolWebhookClient] = None,
    **kwargs: Any,
) -> RelayEngine:
    """
    Build a RelayEngine wired to fakes.

    ``clients`` maps an API key to the fake used for sessions with that key;
    any other key gets ``default_client``.
    """
    clients = clients or {}
    fallback = default_client or FakeCompletionClient()

    def factory(api_key: str) -> FakeCompletionClient:
        client = clients.get(api_key, fallback)
        client.api_key = api_key
        return client

    return RelayEngine(
        config_provider=provider or StaticConfigProvider(),
        store=store or RecordingStore(),
        completion_factory=factory,
        webhook_client=webhook_client or ToolWebhookClient(timeout=1.0),
        defaults=SessionConfig(
            system_prompt=DEFAULT_SYSTEM_PROMPT,
            greeting="Hello! How can I help you today?",
            voice="alloy",
        ),
        default_api_key=default_api_key,
        **kwargs,
    )


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def sent():
    """Collects frames a relay session sends to the transport."""
    return []


@pytest.fixture
def send(sent):
    async def _send(message):
        sent.append(message)
    return _send


@pytest.fixture
def api_session_factory(tmp_path):
    """File-backed database for API tests, usable from the TestClient's event loop."""
    db_path = tmp_path / "api.db"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def api_completion_client():
    """Completion fake shared by the API test engine."""
    return FakeCompletionClient()


@pytest.fixture
def api_engine(api_session_factory, api_completion_client):
    """Relay engine backed by the API test database."""
    return build_engine(
        provider=DatabaseConfigProvider(api_session_factory),
        store=DatabaseConversationStore(api_session_factory),
        default_client=api_completion_client,
    )


@pytest.fixture
def test_client(api_session_factory, api_engine):
    """Create FastAPI test client with overrides."""
    async def _override_get_db():
        async with api_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_relay_engine] = lambda: api_engine

    client = TestClient(app)

    yield client

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture
def mock_openai():
    """Mock OpenAI API client."""
    mock_client = Mock()
    mock_client.close = AsyncMock()
    mock_completion = Mock()
    mock_completion.choices = [
        Mock(message=Mock(content="Test response", tool_calls=None))
    ]
    mock_client.chat.completions.create = AsyncMock(return_value=mock_completion)
    return mock_client
