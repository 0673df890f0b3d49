"""
Thread SQLModel for Gearhead Assistant

A conversation between a user and one assistant configuration. When the
assistants path is used, the upstream thread id lives in the metadata
column under "openai_thread_id".
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


class Thread(SQLModel, table=True):
    """Threads table model."""

    __tablename__ = "threads"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )

    user_id: UUID = Field(
        ...,
        index=True,
        nullable=False,
        description="Owner (auth.users id)"
    )

    assistant_id: Optional[UUID] = Field(
        default=None,
        foreign_key="assistants.id",
        index=True,
        description="Assistant configuration driving this thread"
    )

    title: Optional[str] = Field(
        default=None,
        max_length=255,
        sa_column=Column(String(255)),
    )

    # "metadata" is reserved on declarative classes
    thread_metadata: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSONB, nullable=False, server_default="{}"),
        description="chat_api, model and openai_thread_id"
    )

    # Timestamps (naive UTC for Supabase TIMESTAMP WITHOUT TIME ZONE compatibility)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    @property
    def openai_thread_id(self) -> Optional[str]:
        return (self.thread_metadata or {}).get("openai_thread_id")

    class Config:
        from_attributes = True
