"""
Chat Stream Service for Gearhead Assistant

Turns a chat request into a running stream. It resolves the thread,
routes to completions or an assistant run, starts the matching handler
detached and hands back the writer the HTTP response drains.

Everything that can fail with a status code happens before the handler
starts. After that, errors only show up inside the stream.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

import openai
from openai import AsyncOpenAI

from gearhead.config.settings import settings
from gearhead.domain.chat import ChatMode, MessageRole, build_completion_messages
from gearhead.domain.chat_routing import build_effective_message, choose_chat_mode
from gearhead.infrastructure.ai.assistant_provisioning import AssistantCache, AssistantProvisioner
from gearhead.infrastructure.ai.assistant_stream import handle_assistant_stream
from gearhead.infrastructure.ai.completions_stream import handle_completions_stream
from gearhead.infrastructure.ai.stream_writer import StreamWriter
from gearhead.infrastructure.background import spawn, spawn_stream_producer
from gearhead.infrastructure.db.models.assistant import AssistantConfig
from gearhead.infrastructure.db.models.stored_file import StoredFile
from gearhead.infrastructure.db.models.thread import Thread
from gearhead.infrastructure.db.repositories.assistant_repository import AssistantRepository
from gearhead.infrastructure.db.repositories.chat_repository import ChatRepository
from gearhead.infrastructure.db.repositories.file_repository import FileRepository
from gearhead.infrastructure.exceptions import (
    AIServiceError,
    DatabaseError,
    GearheadError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


logger = logging.getLogger(__name__)

FILE_ACKNOWLEDGEMENT_TEMPLATE = (
    'Please acknowledge that you received the file named "{filename}", and then immediately '
    "begin summarizing its contents without waiting. Always read the file first. Address the "
    "original query if it's different from summarization after you are done with the summary."
    "\n\nOriginal query: {message}"
)


@dataclass
class StreamRequest:
    """Validated chat stream input."""
    message: str
    assistant_id: str
    thread_id: Optional[str] = None
    file_id: Optional[str] = None
    hidden_message: bool = False
    context: Any = None


@dataclass
class StreamStart:
    """What the route needs to build the response."""
    writer: StreamWriter
    thread_id: str
    mode: ChatMode
    new_thread_created: bool = False
    headers: Dict[str, str] = field(default_factory=dict)


def build_assistant_message(
    message: str,
    context: Any,
    user_prompt: Optional[str],
    stored_file: Optional[StoredFile],
) -> str:
    """
    Compose the user turn posted to an upstream thread.

    Order: file acknowledgement preamble, context suffix, file reference,
    then the assistant's user prompt prepended.
    """
    content = message
    if stored_file is not None:
        content = FILE_ACKNOWLEDGEMENT_TEMPLATE.format(filename=stored_file.filename, message=message)

    content = build_effective_message(content, context)

    if stored_file is not None and stored_file.openai_file_id:
        content = f"{content}\n(Referenced File ID: {stored_file.openai_file_id})"

    if user_prompt:
        content = f"{user_prompt}\n\n{content}"
    return content


def _same_id(left: Any, right: Any) -> bool:
    return left is not None and right is not None and str(left) == str(right)


class ChatStreamService:
    """
    Starts chat streams.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        chat_repository: ChatRepository,
        assistant_repository: AssistantRepository,
        file_repository: FileRepository,
        assistant_cache: AssistantCache,
        provisioner: Optional[AssistantProvisioner] = None,
        chat_model: Optional[str] = None,
    ):
        self.client = client
        self.chat_repository = chat_repository
        self.assistant_repository = assistant_repository
        self.file_repository = file_repository
        self.assistant_cache = assistant_cache
        self.provisioner = provisioner or AssistantProvisioner(client, assistant_repository)
        self.chat_model = chat_model or settings.openai_chat_model

    async def start(self, user_id: str, request: StreamRequest) -> StreamStart:
        """
        Validate, route and launch a stream.

        Args:
            user_id: Authenticated caller
            request: Stream input

        Returns:
            StreamStart with the writer the response should drain

        Raises:
            NotFoundError: assistant configuration, thread or file missing
            PermissionDeniedError: thread owned by another user
            ValidationError: referenced file has no upstream file id
            AIServiceError / DatabaseError: provisioning or thread creation failed
        """
        config = await self.assistant_repository.get(request.assistant_id)
        if not config:
            raise NotFoundError(
                f"Assistant configuration {request.assistant_id} not found",
                operation="select",
                table="assistants",
            )

        existing_thread: Optional[Thread] = None
        if request.thread_id:
            existing_thread = await self.chat_repository.get_thread(request.thread_id)
            if not existing_thread:
                raise NotFoundError("Provided thread not found or access denied.", table="threads")
            if not _same_id(existing_thread.user_id, user_id):
                logger.error(
                    f"User {user_id} attempted to access thread {request.thread_id} "
                    f"owned by {existing_thread.user_id}"
                )
                raise PermissionDeniedError("Provided thread not found or access denied.")

        effective_message = build_effective_message(request.message, request.context)
        decision = choose_chat_mode(effective_message, config.user_prompt, request.file_id)
        logger.info(
            f"Routing stream for assistant {request.assistant_id}: {decision.mode.value} "
            f"(~{decision.estimated_tokens} tokens, file={decision.has_file})"
        )

        thread_id: Optional[str] = str(existing_thread.id) if existing_thread else None
        try:
            if decision.mode is ChatMode.COMPLETIONS:
                start = await self._start_completions(user_id, request, config, existing_thread, effective_message)
            else:
                start = await self._start_assistants(user_id, request, config, existing_thread)
            thread_id = start.thread_id

            if not request.hidden_message:
                spawn(
                    self._save_user_message(
                        thread_id,
                        user_id,
                        request.message,
                        request.assistant_id if decision.mode is ChatMode.COMPLETIONS else None,
                    ),
                    name=f"save-user-message-{thread_id}",
                )

            if start.new_thread_created:
                start.headers["X-Thread-ID"] = thread_id
            return start
        finally:
            if thread_id:
                spawn(self._touch_thread(thread_id), name=f"touch-thread-{thread_id}")

    # =========================================================================
    # Completions path
    # =========================================================================

    async def _start_completions(
        self,
        user_id: str,
        request: StreamRequest,
        config: AssistantConfig,
        thread: Optional[Thread],
        effective_message: str,
    ) -> StreamStart:
        new_thread_created = False
        if thread is None:
            try:
                thread = await self.chat_repository.create_thread(
                    user_id=user_id,
                    assistant_id=request.assistant_id,
                    metadata={"chat_api": ChatMode.COMPLETIONS.value, "model": self.chat_model},
                )
            except Exception as e:
                raise DatabaseError(
                    f"Failed to create new thread in database for Chat Completions: {e}",
                    operation="insert",
                    table="threads",
                    original_error=e,
                )
            new_thread_created = True

        thread_id = str(thread.id)
        history = [] if new_thread_created else await self.chat_repository.get_conversation_history(thread_id)
        messages = build_completion_messages(config.user_prompt, history, effective_message)

        writer = StreamWriter()
        spawn_stream_producer(
            writer,
            handle_completions_stream(
                client=self.client,
                chat_repository=self.chat_repository,
                writer=writer,
                messages=messages,
                db_thread_id=thread_id,
                db_assistant_id=request.assistant_id,
                user_id=user_id,
                model=self.chat_model,
            ),
            name=f"completions-stream-{thread_id}",
        )
        return StreamStart(
            writer=writer,
            thread_id=thread_id,
            mode=ChatMode.COMPLETIONS,
            new_thread_created=new_thread_created,
        )

    # =========================================================================
    # Assistants path
    # =========================================================================

    async def _start_assistants(
        self,
        user_id: str,
        request: StreamRequest,
        config: AssistantConfig,
        thread: Optional[Thread],
    ) -> StreamStart:
        try:
            assistant = await self.assistant_cache.get_or_provision(request.assistant_id, self.provisioner)
        except GearheadError as e:
            raise AIServiceError(
                f"Failed to initialize AI assistant: {e.message}",
                operation="provision_assistant",
                original_error=e,
            )

        stored_file = await self._resolve_file(user_id, request.file_id)

        new_thread_created = False
        if thread is not None:
            openai_thread_id = await self._bind_upstream_thread(thread, request.assistant_id, assistant.model)
            thread_id = str(thread.id)
        else:
            thread_id, openai_thread_id = await self._create_threads(user_id, request.assistant_id, assistant.model)
            new_thread_created = True

        content = build_assistant_message(request.message, request.context, config.user_prompt, stored_file)

        writer = StreamWriter()
        spawn_stream_producer(
            writer,
            handle_assistant_stream(
                client=self.client,
                chat_repository=self.chat_repository,
                writer=writer,
                openai_thread_id=openai_thread_id,
                openai_assistant_id=assistant.id,
                content=content,
                db_thread_id=thread_id,
                db_assistant_id=request.assistant_id,
            ),
            name=f"assistant-stream-{thread_id}",
        )
        return StreamStart(
            writer=writer,
            thread_id=thread_id,
            mode=ChatMode.ASSISTANTS,
            new_thread_created=new_thread_created,
        )

    async def _resolve_file(self, user_id: str, file_id: Optional[str]) -> Optional[StoredFile]:
        if not file_id:
            return None
        stored_file = await self.file_repository.get_for_user(file_id, user_id)
        if not stored_file:
            raise NotFoundError("Failed to retrieve file details for chat context.", table="files")
        if not stored_file.openai_file_id:
            raise ValidationError("File has not been processed for AI use. OpenAI File ID missing.")
        return stored_file

    async def _create_upstream_thread(self):
        try:
            return await self.client.beta.threads.create()
        except openai.OpenAIError as e:
            raise AIServiceError(
                f"Failed to create OpenAI thread: {e}",
                operation="create_thread",
                original_error=e,
            )

    async def _bind_upstream_thread(self, thread: Thread, assistant_id: str, model: Optional[str]) -> str:
        """
        Return the upstream thread id for an existing thread.

        A thread switching assistants always gets a fresh upstream thread.
        """
        assistant_changed = not _same_id(thread.assistant_id, assistant_id)
        if not assistant_changed and thread.openai_thread_id:
            return thread.openai_thread_id

        if assistant_changed:
            logger.warning(
                f"Thread {thread.id} was bound to assistant {thread.assistant_id}, "
                f"request is for {assistant_id}; starting a new upstream thread"
            )

        upstream = await self._create_upstream_thread()
        metadata = {
            **(thread.thread_metadata or {}),
            "openai_thread_id": upstream.id,
            "chat_api": ChatMode.ASSISTANTS.value,
            "model": model or settings.openai_assistant_model,
        }
        try:
            await self.chat_repository.update_thread_metadata(
                thread.id,
                metadata,
                assistant_id=assistant_id if assistant_changed else None,
            )
        except Exception as e:
            logger.error(f"Failed to record upstream thread {upstream.id} on thread {thread.id}: {e}")
        return upstream.id

    async def _create_threads(self, user_id: str, assistant_id: str, model: Optional[str]) -> Tuple[str, str]:
        upstream = await self._create_upstream_thread()
        try:
            thread = await self.chat_repository.create_thread(
                user_id=user_id,
                assistant_id=assistant_id,
                metadata={
                    "openai_thread_id": upstream.id,
                    "chat_api": ChatMode.ASSISTANTS.value,
                    "model": model or settings.openai_assistant_model,
                },
            )
        except Exception as e:
            logger.error(f"Failed to create DB thread for upstream thread {upstream.id}: {e}")
            try:
                await self.client.beta.threads.delete(upstream.id)
            except Exception as cleanup_error:
                logger.error(f"Failed to delete orphaned upstream thread {upstream.id}: {cleanup_error}")
            raise DatabaseError(
                f"Failed to create new thread in database: {e}",
                operation="insert",
                table="threads",
                original_error=e,
            )
        return str(thread.id), upstream.id

    # =========================================================================
    # Fire-and-forget writes
    # =========================================================================

    async def _save_user_message(
        self,
        thread_id: str,
        user_id: str,
        content: str,
        assistant_id: Optional[str],
    ) -> None:
        try:
            await self.chat_repository.create_message(
                thread_id=thread_id,
                role=MessageRole.USER,
                content=content,
                user_id=user_id,
                assistant_id=assistant_id,
                completed=True,
            )
            logger.info(f"User message saved for thread {thread_id}")
        except Exception as e:
            logger.error(f"Background user message insert failed for thread {thread_id}: {e}")

    async def _touch_thread(self, thread_id: str) -> None:
        try:
            await self.chat_repository.touch_thread(thread_id)
        except Exception as e:
            logger.error(f"Thread timestamp update failed for {thread_id}: {e}")


def parse_uuid(value: Optional[str], field_name: str) -> Optional[str]:
    """Normalise an optional id field, rejecting malformed values."""
    if value is None or value == "":
        return None
    try:
        return str(UUID(str(value)))
    except ValueError:
        raise ValidationError(f"Invalid {field_name}")
