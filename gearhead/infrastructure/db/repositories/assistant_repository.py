"""
Assistant Repository

Reads assistant configurations and records the upstream assistant and
vector store ids created for them.
"""

import logging
from typing import Optional

from sqlalchemy import update

from gearhead.infrastructure.db.database import get_session_context
from gearhead.infrastructure.db.models.assistant import AssistantConfig
from gearhead.infrastructure.db.repositories.base_repository import IdLike, as_uuid


logger = logging.getLogger(__name__)


class AssistantRepository:
    """Repository for assistant configurations."""

    async def get(self, config_id: IdLike) -> Optional[AssistantConfig]:
        """
        Get an assistant configuration by ID.

        Args:
            config_id: Assistant configuration UUID

        Returns:
            AssistantConfig or None
        """
        async with get_session_context() as session:
            return await session.get(AssistantConfig, as_uuid(config_id))

    async def set_openai_ids(
        self,
        config_id: IdLike,
        openai_assistant_id: Optional[str],
        openai_vector_store_id: Optional[str],
    ) -> None:
        """Record (or clear, with None) both upstream ids in one write."""
        async with get_session_context() as session:
            await session.execute(
                update(AssistantConfig)
                .where(AssistantConfig.id == as_uuid(config_id))
                .values(
                    openai_assistant_id=openai_assistant_id,
                    openai_vector_store_id=openai_vector_store_id,
                )
            )
        logger.info(
            f"Assistant config {config_id} linked to assistant={openai_assistant_id} "
            f"vector_store={openai_vector_store_id}"
        )

    async def set_vector_store_id(self, config_id: IdLike, openai_vector_store_id: str) -> None:
        async with get_session_context() as session:
            await session.execute(
                update(AssistantConfig)
                .where(AssistantConfig.id == as_uuid(config_id))
                .values(openai_vector_store_id=openai_vector_store_id)
            )

    async def clear_openai_ids(self, config_id: IdLike) -> None:
        """Forget stale upstream ids so the next request provisions afresh."""
        await self.set_openai_ids(config_id, None, None)


_assistant_repo_instance: Optional[AssistantRepository] = None


def get_assistant_repository() -> AssistantRepository:
    """Get or create assistant repository singleton."""
    global _assistant_repo_instance

    if _assistant_repo_instance is None:
        _assistant_repo_instance = AssistantRepository()

    return _assistant_repo_instance
