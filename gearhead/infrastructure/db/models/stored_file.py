"""
StoredFile SQLModel for Gearhead Assistant

A user upload, present in object storage and attached to an assistant's
vector store.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Column, String
from sqlmodel import Field, SQLModel


class StoredFile(SQLModel, table=True):
    """Files table model."""

    __tablename__ = "files"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )

    user_id: UUID = Field(..., index=True, nullable=False)

    filename: str = Field(
        ...,
        sa_column=Column(String(255), nullable=False),
    )

    storage_path: str = Field(
        ...,
        sa_column=Column(String(1024), nullable=False),
        description="Key inside the storage bucket"
    )

    mime_type: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255)),
    )

    size_bytes: Optional[int] = Field(
        default=None,
        sa_column=Column(BigInteger),
    )

    openai_file_id: Optional[str] = Field(
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
