"""
Integration tests for the chat endpoints.

The OpenAI client and repositories are replaced with doubles; the
request runs through routing, services, background tasks and the
streaming response.
"""

from types import SimpleNamespace
from uuid import uuid4

import httpx
import openai
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from gearhead.domain.chat import MessageRole
from gearhead.infrastructure.background import drain_background_tasks
from gearhead.infrastructure.db.models.stored_file import StoredFile


@pytest.fixture
def config(mock_assistant_repository, make_assistant_config):
    cfg = make_assistant_config(user_prompt="Answer like a seasoned mechanic.")
    mock_assistant_repository.get.return_value = cfg
    return cfg


class TestStreamEndpoint:

    async def test_new_completions_thread(
        self, wired_app, async_client, config, mock_chat_repository, mock_openai_client, make_thread, upstream
    ):
        thread = make_thread(assistant_id=config.id)
        mock_chat_repository.create_thread.return_value = thread
        mock_openai_client.chat.completions.create.return_value = upstream.stream([
            upstream.chunk("Torque "),
            upstream.chunk("to 80 ft-lb."),
            upstream.chunk(finish_reason="stop"),
        ])

        response = await async_client.post(
            "/api/chat/stream",
            json={"message": "Lug nut torque for a Civic?", "assistantId": str(config.id)},
        )
        await drain_background_tasks()

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["x-thread-id"] == str(thread.id)
        assert response.text == "Torque to 80 ft-lb."

        sent = mock_openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[0] == {"role": "system", "content": "Answer like a seasoned mechanic."}
        assert sent[-1] == {"role": "user", "content": "Lug nut torque for a Civic?"}

        roles = [c.kwargs["role"] for c in mock_chat_repository.create_message.call_args_list]
        assert MessageRole.USER in roles and MessageRole.ASSISTANT in roles
        mock_chat_repository.touch_thread.assert_awaited()

    async def test_existing_thread_has_no_thread_header(
        self, wired_app, async_client, config, mock_chat_repository, mock_openai_client, make_thread, upstream
    ):
        thread = make_thread(assistant_id=config.id)
        mock_chat_repository.get_thread.return_value = thread
        mock_openai_client.chat.completions.create.return_value = upstream.stream([upstream.chunk("ok")])

        response = await async_client.post(
            "/api/chat/stream",
            json={
                "message": "Follow up",
                "assistantId": str(config.id),
                "thread_id": str(thread.id),
                "hiddenMessage": True,
            },
        )
        await drain_background_tasks()

        assert response.status_code == 200
        assert "x-thread-id" not in response.headers
        mock_chat_repository.create_thread.assert_not_awaited()
        mock_chat_repository.get_conversation_history.assert_awaited_once_with(str(thread.id))
        roles = [c.kwargs["role"] for c in mock_chat_repository.create_message.call_args_list]
        assert MessageRole.USER not in roles

    async def test_foreign_thread_forbidden(
        self, wired_app, async_client, config, mock_chat_repository, make_thread
    ):
        thread = make_thread(user_id=uuid4())
        mock_chat_repository.get_thread.return_value = thread

        response = await async_client.post(
            "/api/chat/stream",
            json={"message": "hi", "assistantId": str(config.id), "thread_id": str(thread.id)},
        )

        assert response.status_code == 403
        assert response.json()["type"] == "PermissionDeniedError"

    async def test_unknown_assistant(self, wired_app, async_client):
        response = await async_client.post(
            "/api/chat/stream",
            json={"message": "hi", "assistantId": str(uuid4())},
        )
        assert response.status_code == 404


class TestThreadEndpoints:

    def test_init(self, wired_app, client, mock_chat_repository, make_thread, make_message):
        latest, older = make_thread(title="Latest"), make_thread(title="Older")
        mock_chat_repository.list_threads.return_value = [latest, older]
        mock_chat_repository.list_messages.return_value = [make_message(latest.id, content="hi")]

        response = client.get(f"/api/chat/init?assistantId={uuid4()}")

        assert response.status_code == 200
        data = response.json()
        assert [t["title"] for t in data["threads"]] == ["Latest", "Older"]
        assert data["messages"][0]["content"] == "hi"

    def test_welcome(self, wired_app, client, config, mock_chat_repository, make_thread, make_message, mock_user_id):
        thread = make_thread(title="Email Management", thread_metadata=None)
        mock_chat_repository.create_thread.return_value = thread
        mock_chat_repository.create_message.return_value = make_message(
            thread.id, role="assistant", content="I am your personal assistant, How can I help you today?"
        )

        response = client.post("/api/chat/welcome", json={"assistantId": str(config.id)})

        assert response.status_code == 201
        data = response.json()
        assert data["thread"]["title"] == "Email Management"
        assert data["thread"]["user_id"] == mock_user_id
        assert data["message"]["role"] == "assistant"

    def test_rename(self, wired_app, client, mock_chat_repository, make_thread):
        thread = make_thread()
        renamed = make_thread(id=thread.id, title="Track day prep")
        mock_chat_repository.get_thread.return_value = thread
        mock_chat_repository.rename_thread.return_value = renamed

        response = client.patch(f"/api/chat/threads/{thread.id}", json={"title": "Track day prep"})

        assert response.status_code == 200
        assert response.json()["title"] == "Track day prep"

    def test_rename_blank(self, wired_app, client):
        response = client.patch(f"/api/chat/threads/{uuid4()}", json={"title": " "})
        assert response.status_code == 400
        assert response.json()["error"] == "Title cannot be empty"


class TestMessageEndpoints:

    def test_list_messages(self, wired_app, client, mock_chat_repository, make_thread, make_message):
        thread = make_thread()
        mock_chat_repository.get_thread.return_value = thread
        mock_chat_repository.list_messages.return_value = [
            make_message(thread.id, content="first"),
            make_message(thread.id, role="assistant", content="second"),
        ]

        response = client.get(f"/api/chat/messages?thread_id={thread.id}")

        assert response.status_code == 200
        assert [m["content"] for m in response.json()["messages"]] == ["first", "second"]

    def test_list_messages_unknown_thread(self, wired_app, client):
        response = client.get(f"/api/chat/messages?thread_id={uuid4()}")
        assert response.status_code == 404

    def test_add_message(self, wired_app, client, mock_chat_repository, make_thread, make_message):
        thread = make_thread()
        mock_chat_repository.get_thread.return_value = thread
        mock_chat_repository.create_message.return_value = make_message(thread.id, content="Which plugs?")

        response = client.post("/api/chat/messages", json={"content": "Which plugs?", "thread_id": str(thread.id)})

        assert response.status_code == 201
        assert response.json()["content"] == "Which plugs?"

    def test_add_message_invalid_thread(self, wired_app, client):
        response = client.post("/api/chat/messages", json={"content": "x", "thread_id": str(uuid4())})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid thread_id"


class TestAIHelperEndpoints:

    def test_summarize_short_text(self, wired_app, client, mock_openai_client):
        response = client.post("/api/chat/summarize", json={"text": "Squeaky brakes"})

        assert response.status_code == 200
        assert response.json() == {"summary": "Squeaky brakes"}
        mock_openai_client.chat.completions.create.assert_not_awaited()

    def test_summarize_missing_text(self, wired_app, client):
        response = client.post("/api/chat/summarize", json={})
        assert response.status_code == 400

    def test_draft_response(
        self, wired_app, client, config, make_assistant_config, mock_assistant_repository, mock_openai_client, upstream
    ):
        mock_assistant_repository.get.return_value = make_assistant_config(
            id=config.id, openai_assistant_id="asst_1", openai_vector_store_id="vs_1"
        )
        mock_openai_client.beta.assistants.retrieve.return_value = SimpleNamespace(
            id="asst_1",
            model="gpt-4o",
            tools=[{"type": "file_search"}],
            tool_resources={"file_search": {"vector_store_ids": ["vs_1"]}},
        )
        mock_openai_client.beta.threads.runs.create.return_value = upstream.stream([
            upstream.run_created(),
            upstream.text_delta("Thanks for writing in."),
            upstream.run_completed(),
        ])

        response = client.post(
            "/api/chat/draft-response",
            json={"message": "Is my order shipped?", "assistantId": str(config.id)},
        )

        assert response.status_code == 200
        assert response.json() == {"draft": "Thanks for writing in."}
        mock_openai_client.beta.threads.delete.assert_awaited_once_with("thread_upstream")


def _connection_error():
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/threads"))


class TestUpstreamAndDatabaseFailures:

    @pytest.fixture
    def provisioned(self, mock_assistant_repository, make_assistant_config, mock_openai_client):
        cfg = make_assistant_config(openai_assistant_id="asst_1", openai_vector_store_id="vs_1")
        mock_assistant_repository.get.return_value = cfg
        mock_openai_client.beta.assistants.retrieve.return_value = SimpleNamespace(
            id="asst_1",
            model="gpt-4o",
            tools=[{"type": "file_search"}],
            tool_resources={"file_search": {"vector_store_ids": ["vs_1"]}},
        )
        return cfg

    async def test_stream_with_file_thread_create_failure(
        self, wired_app, async_client, provisioned, mock_file_repository, mock_openai_client, mock_user_id
    ):
        stored = StoredFile(
            id=uuid4(),
            user_id=mock_user_id,
            filename="dyno.csv",
            storage_path=f"public/{mock_user_id}/1-dyno.csv",
            mime_type="text/csv",
            size_bytes=10,
            openai_file_id="file_1",
            openai_vector_store_id="vs_1",
        )
        mock_file_repository.get_for_user.return_value = stored
        mock_openai_client.beta.threads.create.side_effect = _connection_error()

        response = await async_client.post(
            "/api/chat/stream",
            json={"message": "Read my dyno sheet", "assistantId": str(provisioned.id), "filename": str(stored.id)},
        )

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert response.json()["type"] == "AIServiceError"

    def test_draft_response_thread_create_failure(self, wired_app, client, provisioned, mock_openai_client):
        mock_openai_client.beta.threads.create.side_effect = _connection_error()

        response = client.post(
            "/api/chat/draft-response",
            json={"message": "Is my order shipped?", "assistantId": str(provisioned.id)},
        )

        assert response.status_code == 500
        assert response.json()["type"] == "AIServiceError"

    def test_draft_response_run_failure(self, wired_app, client, provisioned, mock_openai_client):
        mock_openai_client.beta.threads.runs.create.side_effect = _connection_error()

        response = client.post(
            "/api/chat/draft-response",
            json={"message": "Is my order shipped?", "assistantId": str(provisioned.id)},
        )

        assert response.status_code == 500
        assert response.json()["type"] == "AIServiceError"
        mock_openai_client.beta.threads.delete.assert_awaited_once_with("thread_upstream")

    def test_database_error_is_json_500(self, wired_app, mock_chat_repository):
        mock_chat_repository.get_thread.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))
        client = TestClient(wired_app, raise_server_exceptions=False)

        response = client.get(f"/api/chat/messages?thread_id={uuid4()}")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "type": "OperationalError"}
