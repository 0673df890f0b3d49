"""
AIProcessingJob SQLModel for Gearhead Assistant

Progress record for a batch email job. processed_emails is only ever
advanced through the increment_job_processed_emails stored procedure.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, String, Text
from sqlmodel import Field, SQLModel


class AIProcessingJob(SQLModel, table=True):
    """ai_processing_jobs table model."""

    __tablename__ = "ai_processing_jobs"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )

    user_id: UUID = Field(..., index=True, nullable=False)

    status: str = Field(
        default="pending",
        sa_column=Column(String(20), nullable=False),
    )

    processed_emails: int = Field(default=0, nullable=False)

    total_emails: int = Field(default=0, nullable=False)

    error_message: Optional[str] = Field(
        default=None,
        sa_column=Column(Text),
    )

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    class Config:
        from_attributes = True
