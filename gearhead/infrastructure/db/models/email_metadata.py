"""
EmailMetadata SQLModel for Gearhead Assistant

Per-user AI annotations on an email, written by the categorize and
prioritize batch jobs. One row per (email_id, user_id).
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel


class EmailMetadata(SQLModel, table=True):
    """email_metadata table model."""

    __tablename__ = "email_metadata"

    email_id: str = Field(
        ...,
        sa_column=Column(String(255), primary_key=True, nullable=False),
    )

    user_id: UUID = Field(..., primary_key=True, nullable=False)

    topic: Optional[str] = Field(
        default=None,
        sa_column=Column(String(100)),
    )

    priority: Optional[str] = Field(
        default=None,
        sa_column=Column(String(10)),
        description="HIGH, MID or LOW"
    )

    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    class Config:
        from_attributes = True
