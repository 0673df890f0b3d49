"""
File Repository

Metadata rows for uploaded files. Lookups are always scoped to the owner.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete
from sqlmodel import select

from gearhead.infrastructure.db.database import get_session_context
from gearhead.infrastructure.db.models.stored_file import StoredFile
from gearhead.infrastructure.db.repositories.base_repository import IdLike, as_uuid


logger = logging.getLogger(__name__)


class FileRepository:
    """Repository for uploaded file metadata."""

    async def create(
        self,
        user_id: IdLike,
        filename: str,
        storage_path: str,
        mime_type: Optional[str],
        size_bytes: Optional[int],
        openai_file_id: Optional[str],
        openai_vector_store_id: Optional[str],
    ) -> StoredFile:
        """
        Insert a file row.

        Returns:
            Created StoredFile with its generated ID
        """
        async with get_session_context() as session:
            record = StoredFile(
                user_id=as_uuid(user_id),
                filename=filename,
                storage_path=storage_path,
                mime_type=mime_type,
                size_bytes=size_bytes,
                openai_file_id=openai_file_id,
                openai_vector_store_id=openai_vector_store_id,
            )
            session.add(record)
            await session.flush()
            await session.refresh(record)

            logger.info(f"Stored file {record.id} ({filename}) for user {user_id}")
            return record

    async def get_for_user(self, file_id: IdLike, user_id: IdLike) -> Optional[StoredFile]:
        """
        Get a file the user owns.

        Returns:
            StoredFile or None when missing or owned by someone else
        """
        async with get_session_context() as session:
            statement = (
                select(StoredFile)
                .where(StoredFile.id == as_uuid(file_id))
                .where(StoredFile.user_id == as_uuid(user_id))
            )
            result = await session.execute(statement)
            return result.scalar_one_or_none()

    async def list_for_user(self, user_id: IdLike) -> List[StoredFile]:
        """A user's files, newest first."""
        async with get_session_context() as session:
            statement = (
                select(StoredFile)
                .where(StoredFile.user_id == as_uuid(user_id))
                .order_by(StoredFile.created_at.desc())
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def delete(self, file_id: IdLike) -> None:
        async with get_session_context() as session:
            await session.execute(
                delete(StoredFile).where(StoredFile.id == as_uuid(file_id))
            )


_file_repo_instance: Optional[FileRepository] = None


def get_file_repository() -> FileRepository:
    """Get or create file repository singleton."""
    global _file_repo_instance

    if _file_repo_instance is None:
        _file_repo_instance = FileRepository()

    return _file_repo_instance
