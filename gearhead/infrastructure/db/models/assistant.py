"""
AssistantConfig SQLModel for Gearhead Assistant

Internal assistant configuration. The upstream assistant and its
dedicated vector store are created lazily and their ids written back here.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, String, Text
from sqlmodel import Field, SQLModel


class AssistantConfig(SQLModel, table=True):
    """Assistants table model."""

    __tablename__ = "assistants"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )

    name: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255)),
    )

    system_prompt: Optional[str] = Field(
        default=None,
        sa_column=Column(Text),
        description="Upstream assistant instructions / batch job system prompt"
    )

    user_prompt: Optional[str] = Field(
        default=None,
        sa_column=Column(Text),
        description="Prepended to every user turn"
    )

    welcome_message: Optional[str] = Field(
        default=None,
        sa_column=Column(Text),
    )

    openai_assistant_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String(100)),
    )

    openai_vector_store_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String(100)),
    )

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    class Config:
        from_attributes = True
