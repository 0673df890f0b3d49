"""
Processing Job Repository

Reads batch job progress and advances its counter through the
increment_job_processed_emails stored procedure, which performs the
increment atomically in Postgres.
"""

import asyncio
import logging
from typing import Optional

from sqlmodel import select
from supabase import Client

from gearhead.infrastructure.db.database import get_session_context
from gearhead.infrastructure.db.models.processing_job import AIProcessingJob
from gearhead.infrastructure.db.repositories.base_repository import IdLike, as_uuid
from gearhead.infrastructure.exceptions import DatabaseError
from gearhead.infrastructure.supabase_client import get_supabase_client


logger = logging.getLogger(__name__)

INCREMENT_PROCEDURE = "increment_job_processed_emails"


class ProcessingJobRepository:
    """Repository for ai_processing_jobs."""

    def __init__(self, supabase: Optional[Client] = None):
        self._supabase = supabase

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    async def get_for_user(self, job_id: IdLike, user_id: IdLike) -> Optional[AIProcessingJob]:
        """
        Get a job owned by the user.

        Returns:
            AIProcessingJob or None when missing or owned by someone else
        """
        async with get_session_context() as session:
            statement = (
                select(AIProcessingJob)
                .where(AIProcessingJob.id == as_uuid(job_id))
                .where(AIProcessingJob.user_id == as_uuid(user_id))
            )
            result = await session.execute(statement)
            return result.scalar_one_or_none()

    async def increment_processed(self, job_id: str, amount: int = 1) -> None:
        """
        Atomically add to processed_emails.

        Raises:
            DatabaseError: the stored procedure call failed
        """
        params = {"p_job_id": str(job_id), "p_increment_amount": amount}
        try:
            await asyncio.to_thread(
                lambda: self.supabase.rpc(INCREMENT_PROCEDURE, params).execute()
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to increment processed count for job {job_id}: {e}",
                operation="rpc",
                table="ai_processing_jobs",
                original_error=e,
            )


_job_repo_instance: Optional[ProcessingJobRepository] = None


def get_processing_job_repository() -> ProcessingJobRepository:
    """Get or create processing job repository singleton."""
    global _job_repo_instance

    if _job_repo_instance is None:
        _job_repo_instance = ProcessingJobRepository()

    return _job_repo_instance
