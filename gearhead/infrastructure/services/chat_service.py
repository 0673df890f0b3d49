"""
Chat Service for Gearhead Assistant

Thread and message operations behind the chat sidebar: loading a chat,
the welcome thread, history, renaming, title summaries and one-off
draft replies.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import openai
from openai import AsyncOpenAI

from gearhead.config.settings import settings
from gearhead.domain.chat import MessageRole
from gearhead.domain.chat_routing import build_effective_message
from gearhead.domain.titles import (
    SHORT_TEXT_THRESHOLD,
    clean_model_title,
    first_line_title,
    is_usable_title,
)
from gearhead.infrastructure.ai.assistant_provisioning import AssistantCache, AssistantProvisioner
from gearhead.infrastructure.ai.assistant_stream import collect_assistant_response
from gearhead.infrastructure.db.models.message import Message
from gearhead.infrastructure.db.models.thread import Thread
from gearhead.infrastructure.db.repositories.assistant_repository import AssistantRepository
from gearhead.infrastructure.db.repositories.chat_repository import ChatRepository
from gearhead.infrastructure.exceptions import (
    AIServiceError,
    GearheadError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)


logger = logging.getLogger(__name__)

DEFAULT_WELCOME_MESSAGE = "I am your personal assistant, How can I help you today?"
WELCOME_THREAD_TITLE = "Email Management"

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert at summarizing text into a single, concise sentence that can be used "
    "as a chat title. The title should be short, ideally under 10 words and no more than "
    "70 characters."
)
SUMMARY_MAX_TOKENS = 40
SUMMARY_TEMPERATURE = 0.3


class ChatService:
    """
    Service for chat business logic.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        chat_repository: ChatRepository,
        assistant_repository: AssistantRepository,
        assistant_cache: Optional[AssistantCache] = None,
        provisioner: Optional[AssistantProvisioner] = None,
    ):
        self.client = client
        self.chat_repository = chat_repository
        self.assistant_repository = assistant_repository
        self.assistant_cache = assistant_cache
        self.provisioner = provisioner or AssistantProvisioner(client, assistant_repository)

    # =========================================================================
    # Thread Operations
    # =========================================================================

    async def load_chat(self, user_id: str, assistant_id: str) -> Tuple[List[Thread], List[Message]]:
        """
        Threads for the assistant plus the latest thread's messages.

        A failure loading messages yields an empty list rather than an error.
        """
        threads = await self.chat_repository.list_threads(user_id, assistant_id)
        if not threads:
            return [], []

        latest = threads[0]
        try:
            messages = await self.chat_repository.list_messages(latest.id)
        except Exception as e:
            logger.error(f"Error fetching messages for thread {latest.id}: {e}")
            messages = []
        return threads, messages

    async def create_welcome_thread(self, user_id: str, assistant_id: str) -> Tuple[Thread, Message]:
        """
        Start a thread seeded with the assistant's greeting.

        Raises:
            NotFoundError: assistant configuration does not exist
        """
        config = await self.assistant_repository.get(assistant_id)
        if not config:
            raise NotFoundError(
                f"Assistant configuration {assistant_id} not found",
                operation="select",
                table="assistants",
            )

        thread = await self.chat_repository.create_thread(
            user_id=user_id,
            assistant_id=assistant_id,
            title=WELCOME_THREAD_TITLE,
        )
        message = await self.chat_repository.create_message(
            thread_id=thread.id,
            role=MessageRole.ASSISTANT,
            content=config.welcome_message or DEFAULT_WELCOME_MESSAGE,
            user_id=None,
            assistant_id=assistant_id,
        )
        return thread, message

    async def get_owned_thread(self, user_id: str, thread_id: str) -> Thread:
        """
        Raises:
            NotFoundError: unknown thread or owned by someone else
        """
        thread = await self.chat_repository.get_thread(thread_id)
        if not thread or str(thread.user_id) != str(user_id):
            raise NotFoundError("Thread not found", operation="select", table="threads")
        return thread

    async def rename_thread(self, user_id: str, thread_id: str, title: str) -> Thread:
        """
        Raises:
            ValidationError: blank title
            NotFoundError: unknown thread
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title cannot be empty")

        await self.get_owned_thread(user_id, thread_id)
        thread = await self.chat_repository.rename_thread(thread_id, title)
        if not thread:
            raise NotFoundError("Thread not found", operation="update", table="threads")
        return thread

    # =========================================================================
    # Message Operations
    # =========================================================================

    async def get_messages(self, user_id: str, thread_id: str) -> List[Message]:
        await self.get_owned_thread(user_id, thread_id)
        return await self.chat_repository.list_messages(thread_id)

    async def add_user_message(
        self,
        user_id: str,
        thread_id: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        """
        Raises:
            ValidationError: thread_id does not reference one of the user's threads
        """
        thread = await self.chat_repository.get_thread(thread_id)
        if not thread or str(thread.user_id) != str(user_id):
            raise ValidationError("Invalid thread_id")

        try:
            return await self.chat_repository.create_message(
                thread_id=thread_id,
                role=MessageRole.USER,
                content=content,
                user_id=user_id,
                metadata=metadata,
            )
        except NotFoundError:
            raise ValidationError("Invalid thread_id")

    # =========================================================================
    # AI helpers
    # =========================================================================

    async def summarize_title(self, text: str) -> str:
        """
        Produce a short chat title for text.

        Short text is titled locally from its first line. Longer text goes
        through the model; an unusable reply falls back to the first line.

        Raises:
            ValidationError: blank text
            AIServiceError: the model call failed
        """
        if not text or not text.strip():
            raise ValidationError("Text is required")

        if len(text) < SHORT_TEXT_THRESHOLD:
            return first_line_title(text)

        try:
            completion = await self.client.chat.completions.create(
                model=settings.openai_chat_model,
                messages=[
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            "Summarize the following text into a single, concise sentence to be "
                            f"used as a chat title. Text: ###{text}###"
                        ),
                    },
                ],
                max_tokens=SUMMARY_MAX_TOKENS,
                temperature=SUMMARY_TEMPERATURE,
            )
        except openai.RateLimitError as e:
            raise RateLimitError("Summarization rate limited, try again shortly", original_error=e)
        except Exception as e:
            raise AIServiceError(
                f"Failed to summarize text: {e}",
                model=settings.openai_chat_model,
                operation="summarize",
                original_error=e,
            )

        raw = completion.choices[0].message.content if completion.choices else None
        summary = clean_model_title(raw)
        if not is_usable_title(summary):
            logger.info(f"Model title {summary!r} too short, using first line")
            return first_line_title(text)
        return summary

    async def draft_response(self, assistant_id: str, message: str, context: Any = None) -> str:
        """
        Ask an assistant for a reply without keeping a conversation.

        Raises:
            AIServiceError: provisioning or the run failed
        """
        try:
            if self.assistant_cache is not None:
                assistant = await self.assistant_cache.get_or_provision(assistant_id, self.provisioner)
            else:
                assistant = await self.provisioner.get_openai_assistant(assistant_id)
        except GearheadError as e:
            raise AIServiceError(
                f"Failed to initialize AI assistant: {e.message}",
                operation="provision_assistant",
                original_error=e,
            )

        content = build_effective_message(message, context)

        try:
            upstream = await self.client.beta.threads.create()
        except openai.OpenAIError as e:
            raise AIServiceError(f"Failed to create OpenAI thread: {e}", operation="create_thread", original_error=e)

        try:
            return await collect_assistant_response(self.client, upstream.id, assistant.id, content)
        except openai.OpenAIError as e:
            raise AIServiceError(f"Failed to draft response: {e}", operation="draft_response", original_error=e)
        finally:
            try:
                await self.client.beta.threads.delete(upstream.id)
            except Exception as e:
                logger.warning(f"Failed to delete temporary thread {upstream.id}: {e}")
