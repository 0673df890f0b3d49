"""
UserGoogleToken SQLModel for Gearhead Assistant

Encrypted Google OAuth tokens captured at sign-in.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class UserGoogleToken(SQLModel, table=True):
    """user_google_tokens table model."""

    __tablename__ = "user_google_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_user_google_tokens_user_provider"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )

    user_id: UUID = Field(..., index=True, nullable=False)

    provider: str = Field(
        default="google",
        sa_column=Column(String(50), nullable=False),
    )

    encrypted_access_token: str = Field(
        ...,
        sa_column=Column(Text, nullable=False),
    )

    encrypted_refresh_token: Optional[str] = Field(
        default=None,
        sa_column=Column(Text),
    )

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    class Config:
        from_attributes = True
