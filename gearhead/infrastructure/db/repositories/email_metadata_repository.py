"""
Email Metadata Repository

Upserts of AI-derived email annotations keyed on (email_id, user_id).
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert

from gearhead.infrastructure.db.database import get_session_context
from gearhead.infrastructure.db.models.email_metadata import EmailMetadata
from gearhead.infrastructure.db.repositories.base_repository import IdLike, as_uuid


logger = logging.getLogger(__name__)


class EmailMetadataRepository:
    """Repository for the email_metadata table."""

    async def upsert_topic(self, email_id: str, user_id: IdLike, topic: str) -> None:
        """Create or update the topic for an email."""
        await self._upsert(email_id, user_id, "topic", topic)

    async def upsert_priority(self, email_id: str, user_id: IdLike, priority: str) -> None:
        """Create or update the priority (HIGH/MID/LOW) for an email."""
        await self._upsert(email_id, user_id, "priority", priority)

    async def _upsert(self, email_id: str, user_id: IdLike, column: str, value: str) -> None:
        """
        Single-column upsert.

        Uses PostgreSQL INSERT ... ON CONFLICT so concurrent batches for the
        same email converge on one row.
        """
        now = datetime.utcnow()
        async with get_session_context() as session:
            stmt = pg_insert(EmailMetadata).values(
                email_id=email_id,
                user_id=as_uuid(user_id),
                updated_at=now,
                **{column: value},
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["email_id", "user_id"],
                set_={column: value, "updated_at": now},
            )
            await session.execute(stmt)


_email_metadata_repo_instance: Optional[EmailMetadataRepository] = None


def get_email_metadata_repository() -> EmailMetadataRepository:
    """Get or create email metadata repository singleton."""
    global _email_metadata_repo_instance

    if _email_metadata_repo_instance is None:
        _email_metadata_repo_instance = EmailMetadataRepository()

    return _email_metadata_repo_instance
