"""
Chat Repository for Gearhead Assistant

Data access for threads and messages. Every method opens its own session
so the repository can be used from detached stream tasks.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from gearhead.domain.chat import MessageRole
from gearhead.infrastructure.db.database import get_session_context
from gearhead.infrastructure.db.models.message import Message
from gearhead.infrastructure.db.models.thread import Thread
from gearhead.infrastructure.db.repositories.base_repository import IdLike, as_uuid
from gearhead.infrastructure.exceptions import NotFoundError


logger = logging.getLogger(__name__)


class ChatRepository:
    """
    Repository for chat threads and messages.
    """

    # =========================================================================
    # Thread Operations
    # =========================================================================

    async def get_thread(self, thread_id: IdLike) -> Optional[Thread]:
        """
        Get a thread by ID.

        Args:
            thread_id: Thread UUID

        Returns:
            Thread or None if not found
        """
        async with get_session_context() as session:
            return await session.get(Thread, as_uuid(thread_id))

    async def list_threads(
        self,
        user_id: IdLike,
        assistant_id: IdLike,
    ) -> List[Thread]:
        """
        List a user's threads for one assistant configuration.

        Args:
            user_id: Owner UUID
            assistant_id: Assistant configuration UUID

        Returns:
            Threads ordered by updated_at descending
        """
        async with get_session_context() as session:
            statement = (
                select(Thread)
                .where(Thread.user_id == as_uuid(user_id))
                .where(Thread.assistant_id == as_uuid(assistant_id))
                .order_by(Thread.updated_at.desc())
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def create_thread(
        self,
        user_id: IdLike,
        assistant_id: Optional[IdLike],
        title: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Thread:
        """
        Create a new thread.

        Args:
            user_id: Owner UUID
            assistant_id: Assistant configuration UUID
            title: Optional thread title
            metadata: chat_api / model / openai_thread_id

        Returns:
            Created Thread
        """
        async with get_session_context() as session:
            thread = Thread(
                user_id=as_uuid(user_id),
                assistant_id=as_uuid(assistant_id),
                title=title,
                thread_metadata=dict(metadata or {}),
            )
            session.add(thread)
            await session.flush()
            await session.refresh(thread)

            logger.info(f"Created thread {thread.id} for user {user_id}")
            return thread

    async def update_thread_metadata(
        self,
        thread_id: IdLike,
        metadata: Dict[str, Any],
        assistant_id: Optional[IdLike] = None,
    ) -> None:
        """
        Replace a thread's metadata, optionally rebinding its assistant.

        Args:
            thread_id: Thread UUID
            metadata: Full metadata document to store
            assistant_id: New assistant configuration, if it changed
        """
        values: Dict[str, Any] = {"thread_metadata": dict(metadata)}
        if assistant_id is not None:
            values["assistant_id"] = as_uuid(assistant_id)

        async with get_session_context() as session:
            await session.execute(
                update(Thread).where(Thread.id == as_uuid(thread_id)).values(**values)
            )

    async def rename_thread(self, thread_id: IdLike, title: str) -> Optional[Thread]:
        """
        Set a thread's title and bump updated_at.

        Returns:
            Updated Thread or None if not found
        """
        async with get_session_context() as session:
            thread = await session.get(Thread, as_uuid(thread_id))
            if not thread:
                return None

            thread.title = title
            thread.updated_at = datetime.utcnow()
            await session.flush()
            await session.refresh(thread)
            return thread

    async def touch_thread(self, thread_id: IdLike) -> None:
        """Bump a thread's updated_at."""
        async with get_session_context() as session:
            await session.execute(
                update(Thread)
                .where(Thread.id == as_uuid(thread_id))
                .values(updated_at=datetime.utcnow())
            )

    # =========================================================================
    # Message Operations
    # =========================================================================

    async def list_messages(self, thread_id: IdLike) -> List[Message]:
        """
        Get all messages for a thread in creation order.

        Args:
            thread_id: Thread UUID

        Returns:
            Messages ordered by created_at ascending
        """
        async with get_session_context() as session:
            statement = (
                select(Message)
                .where(Message.thread_id == as_uuid(thread_id))
                .order_by(Message.created_at.asc())
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def get_conversation_history(self, thread_id: IdLike) -> List[Message]:
        """User and assistant turns only, in creation order."""
        async with get_session_context() as session:
            statement = (
                select(Message)
                .where(Message.thread_id == as_uuid(thread_id))
                .where(Message.role.in_([MessageRole.USER.value, MessageRole.ASSISTANT.value]))
                .order_by(Message.created_at.asc())
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def create_message(
        self,
        thread_id: IdLike,
        role: MessageRole,
        content: str,
        user_id: Optional[IdLike] = None,
        assistant_id: Optional[IdLike] = None,
        completed: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        """
        Insert a message.

        Args:
            thread_id: Parent thread UUID
            role: Message role
            content: Message text
            user_id: Author, None for assistant replies on the assistants path
            assistant_id: Assistant configuration UUID
            completed: False while a reply is still being produced
            metadata: Upstream run/thread ids

        Returns:
            Created Message

        Raises:
            NotFoundError: thread_id does not reference an existing thread
        """
        try:
            async with get_session_context() as session:
                message = Message(
                    thread_id=as_uuid(thread_id),
                    role=MessageRole(role).value,
                    content=content,
                    user_id=as_uuid(user_id),
                    assistant_id=as_uuid(assistant_id),
                    completed=completed,
                    message_metadata=metadata,
                )
                session.add(message)
                await session.flush()
                await session.refresh(message)
                return message
        except IntegrityError as e:
            raise NotFoundError(
                f"Thread {thread_id} does not exist",
                operation="insert",
                table="messages",
                original_error=e,
            )


# =============================================================================
# Singleton Instance
# =============================================================================

_chat_repo_instance: Optional[ChatRepository] = None


def get_chat_repository() -> ChatRepository:
    """Get or create chat repository singleton."""
    global _chat_repo_instance

    if _chat_repo_instance is None:
        _chat_repo_instance = ChatRepository()

    return _chat_repo_instance
