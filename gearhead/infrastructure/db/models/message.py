"""
Message SQLModel for Gearhead Assistant

Individual turns inside a thread. Assistant replies produced by a stream
are stored once the stream ends, with user_id left empty on the
assistants path.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


class Message(SQLModel, table=True):
    """Messages table model."""

    __tablename__ = "messages"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )

    thread_id: UUID = Field(
        ...,
        sa_column=Column(
            "thread_id",
            ForeignKey("threads.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        ),
    )

    user_id: Optional[UUID] = Field(default=None, index=True)

    assistant_id: Optional[UUID] = Field(default=None)

    role: str = Field(
        ...,
        max_length=20,
        sa_column=Column(String(20), nullable=False),
        description="'user', 'assistant' or 'system'"
    )

    content: str = Field(
        ...,
        sa_column=Column(Text, nullable=False),
    )

    completed: bool = Field(default=True, nullable=False)

    message_metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_column=Column("metadata", JSONB),
        description="openai_run_id / openai_thread_id for assistant replies"
    )

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    class Config:
        from_attributes = True
