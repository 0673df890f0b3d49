"""
Chat Domain Models for Gearhead Assistant

Pure Python/Pydantic models for chat entities.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Role of the message sender."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMode(str, Enum):
    """Which upstream API serves a stream request."""
    COMPLETIONS = "completions"
    ASSISTANTS = "assistants"


class ThreadSummary(BaseModel):
    """Thread as listed in the chat sidebar."""
    id: UUID
    title: Optional[str] = None
    assistant_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ThreadDetail(ThreadSummary):
    """Thread with owner and metadata."""
    user_id: UUID
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="thread_metadata")


class ChatMessage(BaseModel):
    """Complete chat message entity."""
    id: UUID
    thread_id: UUID
    user_id: Optional[UUID] = None
    assistant_id: Optional[UUID] = None
    role: MessageRole
    content: str
    completed: bool = True
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="message_metadata")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ChatTurn(BaseModel):
    """One entry of a completions request."""
    role: MessageRole
    content: str

    def to_openai(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


def build_completion_messages(
    system_prompt: Optional[str],
    history: List[Any],
    user_message: str,
) -> List[Dict[str, str]]:
    """
    Assemble the completions message list.

    Order: optional system prompt, prior user/assistant turns as given,
    then the new user turn.
    """
    turns: List[ChatTurn] = []
    if system_prompt:
        turns.append(ChatTurn(role=MessageRole.SYSTEM, content=system_prompt))
    for item in history:
        role = MessageRole(item.role)
        if role in (MessageRole.USER, MessageRole.ASSISTANT):
            turns.append(ChatTurn(role=role, content=item.content))
    turns.append(ChatTurn(role=MessageRole.USER, content=user_message))
    return [turn.to_openai() for turn in turns]
