"""
Unit tests for chat stream orchestration.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from gearhead.domain.chat import ChatMode, MessageRole
from gearhead.infrastructure.ai.assistant_provisioning import AssistantCache
from gearhead.infrastructure.background import drain_background_tasks
from gearhead.infrastructure.db.models.stored_file import StoredFile
from gearhead.infrastructure.exceptions import (
    AIServiceError,
    AssistantProvisioningError,
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from gearhead.infrastructure.services.chat_stream_service import (
    ChatStreamService,
    StreamRequest,
    build_assistant_message,
)


@pytest.fixture
def config(make_assistant_config):
    return make_assistant_config(user_prompt="Answer like a pit crew chief.")


@pytest.fixture
def cache():
    return AssistantCache(ttl_seconds=600, max_size=10)


@pytest.fixture
def service(mock_openai_client, mock_chat_repository, mock_assistant_repository, mock_file_repository, cache, config):
    mock_assistant_repository.get.return_value = config
    return ChatStreamService(
        mock_openai_client,
        mock_chat_repository,
        mock_assistant_repository,
        mock_file_repository,
        cache,
        provisioner=MagicMock(),
        chat_model="gpt-4o",
    )


def _upstream_assistant():
    return SimpleNamespace(id="asst_1", model="gpt-4o-mini")


async def _body(start) -> str:
    return b"".join([chunk async for chunk in start.writer.iter_bytes()]).decode()


class TestBuildAssistantMessage:

    def test_plain_message(self):
        assert build_assistant_message("hi", None, None, None) == "hi"

    def test_assembly_order(self):
        stored_file = StoredFile(
            id=uuid4(),
            user_id=uuid4(),
            filename="dyno_sheet.pdf",
            storage_path="public/u/1-dyno_sheet.pdf",
            openai_file_id="file_abc",
        )
        content = build_assistant_message("Is this tune safe?", {"car": "GT86"}, "Be precise.", stored_file)

        assert content.startswith("Be precise.\n\nPlease acknowledge that you received the file named \"dyno_sheet.pdf\"")
        assert "Original query: Is this tune safe?" in content
        assert content.index("\n\nCONTEXT:") < content.index("(Referenced File ID: file_abc)")
        assert content.endswith('CONTEXT:{"car": "GT86"}\n(Referenced File ID: file_abc)')


class TestPreflight:

    async def test_missing_config_is_not_found(self, service, mock_assistant_repository):
        mock_assistant_repository.get.return_value = None

        with pytest.raises(NotFoundError):
            await service.start("u1", StreamRequest(message="hi", assistant_id=str(uuid4())))

    async def test_unknown_thread_is_not_found(self, service, config, mock_user_id):
        with pytest.raises(NotFoundError):
            await service.start(
                mock_user_id,
                StreamRequest(message="hi", assistant_id=str(config.id), thread_id=str(uuid4())),
            )

    async def test_foreign_thread_is_forbidden(self, service, config, mock_chat_repository, make_thread):
        thread = make_thread(user_id="99999999-9999-9999-9999-999999999999")
        mock_chat_repository.get_thread.return_value = thread

        with pytest.raises(PermissionDeniedError):
            await service.start(
                "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee",
                StreamRequest(message="hi", assistant_id=str(config.id), thread_id=str(thread.id)),
            )


class TestCompletionsPath:

    async def test_new_thread_streams_and_persists(
        self, service, config, mock_openai_client, mock_chat_repository, make_thread, mock_user_id, upstream
    ):
        thread = make_thread(assistant_id=config.id)
        mock_chat_repository.create_thread.return_value = thread
        mock_openai_client.chat.completions.create.return_value = upstream.stream([
            upstream.chunk("Box box."),
            upstream.chunk(None, finish_reason="stop"),
        ])

        start = await service.start(mock_user_id, StreamRequest(message="Pit now?", assistant_id=str(config.id)))

        assert start.mode is ChatMode.COMPLETIONS
        assert start.new_thread_created is True
        assert start.headers == {"X-Thread-ID": str(thread.id)}
        assert await _body(start) == "Box box."
        await drain_background_tasks()

        create_kwargs = mock_chat_repository.create_thread.call_args.kwargs
        assert create_kwargs["metadata"] == {"chat_api": "completions", "model": "gpt-4o"}

        sent = mock_openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert sent == [
            {"role": "system", "content": "Answer like a pit crew chief."},
            {"role": "user", "content": "Pit now?"},
        ]

        saved = [call.kwargs for call in mock_chat_repository.create_message.call_args_list]
        user_saves = [kw for kw in saved if kw["role"] is MessageRole.USER]
        assert user_saves[0]["content"] == "Pit now?"
        assert user_saves[0]["assistant_id"] == str(config.id)
        mock_chat_repository.touch_thread.assert_awaited_with(str(thread.id))

    async def test_existing_thread_includes_history(
        self, service, config, mock_openai_client, mock_chat_repository, make_thread, make_message, mock_user_id, upstream
    ):
        thread = make_thread(assistant_id=config.id)
        mock_chat_repository.get_thread.return_value = thread
        mock_chat_repository.get_conversation_history.return_value = [
            make_message(thread.id, "user", "Tyre temps?"),
            make_message(thread.id, "assistant", "Fronts are hot."),
        ]
        mock_openai_client.chat.completions.create.return_value = upstream.stream([upstream.chunk("ok")])

        start = await service.start(
            mock_user_id,
            StreamRequest(message="And rears?", assistant_id=str(config.id), thread_id=str(thread.id), context={"lap": 12}),
        )
        await _body(start)
        await drain_background_tasks()

        assert start.headers == {}
        sent = mock_openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in sent] == ["system", "user", "assistant", "user"]
        assert sent[-1]["content"] == 'And rears?\n\nCONTEXT:{"lap": 12}'
        mock_chat_repository.create_thread.assert_not_awaited()

    async def test_hidden_message_is_not_saved(
        self, service, config, mock_openai_client, mock_chat_repository, make_thread, mock_user_id, upstream
    ):
        mock_chat_repository.create_thread.return_value = make_thread()
        mock_openai_client.chat.completions.create.return_value = upstream.stream([upstream.chunk("  ")])

        start = await service.start(
            mock_user_id,
            StreamRequest(message="system ping", assistant_id=str(config.id), hidden_message=True),
        )
        await _body(start)
        await drain_background_tasks()

        mock_chat_repository.create_message.assert_not_awaited()

    async def test_thread_creation_failure_is_database_error(
        self, service, config, mock_chat_repository, mock_user_id
    ):
        mock_chat_repository.create_thread.side_effect = RuntimeError("insert failed")

        with pytest.raises(DatabaseError):
            await service.start(mock_user_id, StreamRequest(message="hi", assistant_id=str(config.id)))


class TestAssistantsPath:

    async def test_file_request_uses_assistant_thread(
        self, service, config, cache, mock_openai_client, mock_chat_repository, mock_file_repository,
        make_thread, mock_user_id, upstream,
    ):
        cache.set(str(config.id), _upstream_assistant())
        thread = make_thread(assistant_id=config.id, thread_metadata={"openai_thread_id": "thread_existing"})
        mock_chat_repository.get_thread.return_value = thread
        file_id = uuid4()
        mock_file_repository.get_for_user.return_value = StoredFile(
            id=file_id, user_id=uuid4(), filename="brakes.pdf", storage_path="p", openai_file_id="file_1"
        )
        mock_openai_client.beta.threads.runs.create.return_value = upstream.stream([
            upstream.run_created(thread_id="thread_existing"),
            upstream.text_delta("Pads look worn."),
            upstream.run_completed(thread_id="thread_existing"),
        ])

        start = await service.start(
            mock_user_id,
            StreamRequest(
                message="Check this", assistant_id=str(config.id), thread_id=str(thread.id), file_id=str(file_id)
            ),
        )

        assert start.mode is ChatMode.ASSISTANTS
        assert start.headers == {}
        assert await _body(start) == "Pads look worn."
        await drain_background_tasks()

        mock_openai_client.beta.threads.create.assert_not_awaited()
        args, kwargs = mock_openai_client.beta.threads.messages.create.call_args
        assert args == ("thread_existing",)
        assert kwargs["content"].startswith("Answer like a pit crew chief.\n\n")
        assert kwargs["content"].endswith("(Referenced File ID: file_1)")
        assert mock_openai_client.beta.threads.runs.create.call_args.kwargs["assistant_id"] == "asst_1"

        user_saves = [
            call.kwargs for call in mock_chat_repository.create_message.call_args_list
            if call.kwargs["role"] is MessageRole.USER
        ]
        assert user_saves[0]["assistant_id"] is None

    async def test_new_thread_creates_upstream_first(
        self, service, config, cache, mock_openai_client, mock_chat_repository, make_thread, mock_user_id, upstream
    ):
        cache.set(str(config.id), _upstream_assistant())
        db_thread = make_thread(assistant_id=config.id)
        mock_chat_repository.create_thread.return_value = db_thread
        mock_openai_client.beta.threads.runs.create.return_value = upstream.stream([upstream.text_delta("ok")])

        start = await service.start(
            mock_user_id,
            StreamRequest(message="x" * 600_000, assistant_id=str(config.id)),
        )
        await _body(start)
        await drain_background_tasks()

        assert start.mode is ChatMode.ASSISTANTS
        assert start.headers == {"X-Thread-ID": str(db_thread.id)}
        assert mock_chat_repository.create_thread.call_args.kwargs["metadata"] == {
            "openai_thread_id": "thread_upstream",
            "chat_api": "assistants",
            "model": "gpt-4o-mini",
        }

    async def test_new_thread_db_failure_deletes_upstream_thread(
        self, service, config, cache, mock_openai_client, mock_chat_repository, mock_user_id
    ):
        cache.set(str(config.id), _upstream_assistant())
        mock_chat_repository.create_thread.side_effect = RuntimeError("insert failed")

        with pytest.raises(DatabaseError):
            await service.start(
                mock_user_id,
                StreamRequest(message="x" * 600_000, assistant_id=str(config.id)),
            )

        mock_openai_client.beta.threads.delete.assert_awaited_once_with("thread_upstream")

    async def test_assistant_switch_starts_new_upstream_thread(
        self, service, config, cache, mock_openai_client, mock_chat_repository, make_thread, mock_user_id, upstream
    ):
        cache.set(str(config.id), _upstream_assistant())
        thread = make_thread(thread_metadata={"openai_thread_id": "thread_old", "note": "keep"})
        mock_chat_repository.get_thread.return_value = thread
        mock_openai_client.beta.threads.runs.create.return_value = upstream.stream([upstream.text_delta("ok")])

        start = await service.start(
            mock_user_id,
            StreamRequest(message="x" * 600_000, assistant_id=str(config.id), thread_id=str(thread.id)),
        )
        await _body(start)
        await drain_background_tasks()

        args, kwargs = mock_chat_repository.update_thread_metadata.call_args
        assert args[1] == {
            "openai_thread_id": "thread_upstream",
            "chat_api": "assistants",
            "model": "gpt-4o-mini",
            "note": "keep",
        }
        assert kwargs["assistant_id"] == str(config.id)
        assert mock_openai_client.beta.threads.messages.create.call_args.args == ("thread_upstream",)

    async def test_file_without_upstream_id_is_rejected(
        self, service, config, cache, mock_file_repository, mock_user_id
    ):
        cache.set(str(config.id), _upstream_assistant())
        mock_file_repository.get_for_user.return_value = StoredFile(
            id=uuid4(), user_id=uuid4(), filename="a.txt", storage_path="p", openai_file_id=None
        )

        with pytest.raises(ValidationError):
            await service.start(
                mock_user_id,
                StreamRequest(message="hi", assistant_id=str(config.id), file_id=str(uuid4())),
            )

    async def test_unknown_file_is_not_found(self, service, config, cache, mock_user_id):
        cache.set(str(config.id), _upstream_assistant())

        with pytest.raises(NotFoundError):
            await service.start(
                mock_user_id,
                StreamRequest(message="hi", assistant_id=str(config.id), file_id=str(uuid4())),
            )

    async def test_provisioning_failure_is_ai_service_error(self, service, config, mock_user_id):
        service.provisioner.get_openai_assistant = AsyncMock(side_effect=AssistantProvisioningError("upstream down"))

        with pytest.raises(AIServiceError):
            await service.start(
                mock_user_id,
                StreamRequest(message="hi", assistant_id=str(config.id), file_id=str(uuid4())),
            )
