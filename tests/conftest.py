"""
Test configuration and fixtures for Gearhead Assistant.

Provides shared fixtures for unit and integration tests. Required
settings are seeded before anything from gearhead is imported.
"""

import base64
import os

os.environ.setdefault("SUPABASE_URL", "https://testproject.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", base64.b64encode(b"k" * 32).decode())
os.environ.setdefault("ENVIRONMENT", "testing")

from datetime import datetime  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import AsyncGenerator, List  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application with dependency overrides cleared afterwards."""
    from gearhead.main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client sharing the test's event loop."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def mock_user_id() -> str:
    return "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


@pytest.fixture
def authed_app(app, mock_user_id):
    """App whose auth dependencies resolve to mock_user_id."""
    from gearhead.api.dependencies import get_current_user_id, get_optional_user_id

    app.dependency_overrides[get_current_user_id] = lambda: mock_user_id
    app.dependency_overrides[get_optional_user_id] = lambda: mock_user_id
    return app


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_chat_repository():
    """ChatRepository double with every coroutine mocked."""
    repo = MagicMock()
    repo.get_thread = AsyncMock(return_value=None)
    repo.list_threads = AsyncMock(return_value=[])
    repo.create_thread = AsyncMock()
    repo.update_thread_metadata = AsyncMock()
    repo.rename_thread = AsyncMock()
    repo.touch_thread = AsyncMock()
    repo.list_messages = AsyncMock(return_value=[])
    repo.get_conversation_history = AsyncMock(return_value=[])
    repo.create_message = AsyncMock()
    return repo


@pytest.fixture
def mock_assistant_repository():
    repo = MagicMock()
    repo.get = AsyncMock(return_value=None)
    repo.set_openai_ids = AsyncMock()
    repo.set_vector_store_id = AsyncMock()
    repo.clear_openai_ids = AsyncMock()
    return repo


@pytest.fixture
def mock_file_repository():
    repo = MagicMock()
    repo.create = AsyncMock()
    repo.get_for_user = AsyncMock(return_value=None)
    repo.list_for_user = AsyncMock(return_value=[])
    repo.delete = AsyncMock()
    return repo


@pytest.fixture
def mock_openai_client():
    """AsyncOpenAI double covering the endpoints the backend calls."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.beta.threads.create = AsyncMock(return_value=SimpleNamespace(id="thread_upstream"))
    client.beta.threads.delete = AsyncMock()
    client.beta.threads.messages.create = AsyncMock()
    client.beta.threads.runs.create = AsyncMock()
    client.beta.assistants.create = AsyncMock()
    client.beta.assistants.retrieve = AsyncMock()
    client.beta.assistants.update = AsyncMock()
    client.beta.assistants.delete = AsyncMock()
    client.vector_stores.create = AsyncMock(return_value=SimpleNamespace(id="vs_new"))
    client.vector_stores.delete = AsyncMock()
    client.vector_stores.files.create = AsyncMock()
    client.vector_stores.files.retrieve = AsyncMock(return_value=SimpleNamespace(status="completed", last_error=None))
    client.vector_stores.files.delete = AsyncMock()
    client.files.create = AsyncMock(return_value=SimpleNamespace(id="file_upstream"))
    client.files.delete = AsyncMock()
    return client


# =============================================================================
# Upstream payload builders
# =============================================================================

class FakeAsyncStream:
    """Async iterator standing in for an SDK stream."""

    def __init__(self, items: List, error: Exception = None):
        self._items = list(items)
        self._error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self._items:
            yield item
        if self._error is not None:
            raise self._error


def completion_chunk(content=None, finish_reason=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=content), finish_reason=finish_reason)]
    )


def run_created(run_id="run_1", thread_id="thread_upstream"):
    return SimpleNamespace(event="thread.run.created", data=SimpleNamespace(id=run_id, thread_id=thread_id))


def text_delta(value):
    block = SimpleNamespace(type="text", text=SimpleNamespace(value=value))
    return SimpleNamespace(event="thread.message.delta", data=SimpleNamespace(delta=SimpleNamespace(content=[block])))


def image_delta():
    block = SimpleNamespace(type="image_file", image_file=SimpleNamespace(file_id="img"))
    return SimpleNamespace(event="thread.message.delta", data=SimpleNamespace(delta=SimpleNamespace(content=[block])))


def run_failed(message=None):
    last_error = SimpleNamespace(message=message) if message else None
    return SimpleNamespace(
        event="thread.run.failed",
        data=SimpleNamespace(id="run_1", thread_id="thread_upstream", last_error=last_error),
    )


def run_completed(run_id="run_1", thread_id="thread_upstream"):
    return SimpleNamespace(event="thread.run.completed", data=SimpleNamespace(id=run_id, thread_id=thread_id))


def json_completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def upstream():
    """Builders for upstream SDK payloads."""
    return SimpleNamespace(
        stream=FakeAsyncStream,
        chunk=completion_chunk,
        run_created=run_created,
        text_delta=text_delta,
        image_delta=image_delta,
        run_failed=run_failed,
        run_completed=run_completed,
        completion=json_completion,
    )


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def make_assistant_config():
    """Build AssistantConfig rows."""
    from gearhead.infrastructure.db.models.assistant import AssistantConfig

    def _make(**overrides):
        values = {
            "id": uuid4(),
            "name": "Garage Buddy",
            "system_prompt": "You help car enthusiasts.",
            "user_prompt": None,
            "welcome_message": None,
            "openai_assistant_id": None,
            "openai_vector_store_id": None,
        }
        values.update(overrides)
        return AssistantConfig(**values)

    return _make


@pytest.fixture
def make_thread(mock_user_id):
    """Build Thread rows owned by mock_user_id unless overridden."""
    from gearhead.infrastructure.db.models.thread import Thread

    def _make(**overrides):
        now = datetime.utcnow()
        values = {
            "id": uuid4(),
            "user_id": mock_user_id,
            "assistant_id": uuid4(),
            "title": None,
            "thread_metadata": {},
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        return Thread(**values)

    return _make


@pytest.fixture
def make_message():
    from gearhead.infrastructure.db.models.message import Message

    def _make(thread_id, role="user", content="hello", **overrides):
        values = {
            "id": uuid4(),
            "thread_id": thread_id,
            "role": role,
            "content": content,
            "completed": True,
            "created_at": datetime.utcnow(),
        }
        values.update(overrides)
        return Message(**values)

    return _make


@pytest.fixture
def wired_app(
    authed_app,
    mock_openai_client,
    mock_chat_repository,
    mock_assistant_repository,
    mock_file_repository,
):
    """Authenticated app with the OpenAI client and repositories replaced by doubles."""
    from gearhead.infrastructure.ai.assistant_provisioning import AssistantCache, get_assistant_cache
    from gearhead.infrastructure.ai.openai_client import get_openai_client
    from gearhead.infrastructure.db.repositories import (
        get_assistant_repository,
        get_chat_repository,
        get_file_repository,
    )

    cache = AssistantCache(ttl_seconds=600, max_size=10)
    authed_app.dependency_overrides[get_openai_client] = lambda: mock_openai_client
    authed_app.dependency_overrides[get_chat_repository] = lambda: mock_chat_repository
    authed_app.dependency_overrides[get_assistant_repository] = lambda: mock_assistant_repository
    authed_app.dependency_overrides[get_file_repository] = lambda: mock_file_repository
    authed_app.dependency_overrides[get_assistant_cache] = lambda: cache
    return authed_app
