"""
Assistant Provisioning

Maps an internal assistant configuration to a live upstream assistant
with the file_search tool bound to exactly one dedicated vector store.
Missing resources are created, drifted ones reconciled, and stale ids
cleared so the next request starts over.
"""

import logging
from typing import Any, Dict, List, Optional

import openai
from cachetools import TTLCache
from openai import AsyncOpenAI
from openai.types.beta import Assistant

from gearhead.config.settings import settings
from gearhead.infrastructure.db.models.assistant import AssistantConfig
from gearhead.infrastructure.db.repositories.assistant_repository import AssistantRepository
from gearhead.infrastructure.exceptions import AssistantProvisioningError, NotFoundError


logger = logging.getLogger(__name__)

DEFAULT_ASSISTANT_NAME = "Default Assistant Name"
FILE_SEARCH_TOOL = {"type": "file_search"}


class AssistantProvisioner:
    """
    Idempotent get-or-create for upstream assistants.

    A second call for the same configuration finds the ids recorded by the
    first and only retrieves (and, if needed, updates) the assistant.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        assistant_repository: AssistantRepository,
        model: Optional[str] = None,
    ):
        self.client = client
        self.assistant_repository = assistant_repository
        self.model = model or settings.openai_assistant_model

    async def get_openai_assistant(self, config_id: str) -> Assistant:
        """
        Return the upstream assistant for a configuration.

        Args:
            config_id: Assistant configuration UUID

        Returns:
            Upstream assistant, linked to the configuration's vector store

        Raises:
            NotFoundError: the configuration does not exist
            AssistantProvisioningError: upstream or persistence failure, or
                the recorded assistant no longer exists (ids are cleared)
        """
        config = await self.assistant_repository.get(config_id)
        if not config:
            raise NotFoundError(
                f"Assistant configuration with ID {config_id} not found",
                operation="select",
                table="assistants",
            )

        if not config.openai_assistant_id:
            return await self._create(config)
        return await self._reconcile(config)

    # =========================================================================
    # Creation
    # =========================================================================

    async def _create(self, config: AssistantConfig) -> Assistant:
        name = config.name or DEFAULT_ASSISTANT_NAME
        config_id = str(config.id)
        logger.info(f"No upstream assistant for config {config_id} ({name}); creating one")

        vector_store = None
        try:
            vector_store = await self.client.vector_stores.create(
                name=f"VectorStore for {name} (DB ID: {config_id})",
            )
            assistant = await self.client.beta.assistants.create(
                name=name,
                instructions=config.system_prompt or "",
                tools=[FILE_SEARCH_TOOL],
                tool_resources={"file_search": {"vector_store_ids": [vector_store.id]}},
                model=self.model,
            )
        except openai.OpenAIError as e:
            if vector_store is not None:
                await self._delete_quietly("vector store", self.client.vector_stores.delete, vector_store.id)
            raise AssistantProvisioningError(
                f"Failed to create upstream assistant: {e}",
                assistant_config_id=config_id,
                original_error=e,
            )

        try:
            await self.assistant_repository.set_openai_ids(config_id, assistant.id, vector_store.id)
        except Exception as e:
            logger.error(f"Failed to record upstream ids for config {config_id}: {e}")
            await self._delete_quietly("assistant", self.client.beta.assistants.delete, assistant.id)
            await self._delete_quietly("vector store", self.client.vector_stores.delete, vector_store.id)
            raise AssistantProvisioningError(
                f"Failed to update database after creating upstream assistant: {e}",
                assistant_config_id=config_id,
                original_error=e,
            )

        logger.info(f"Created assistant {assistant.id} with vector store {vector_store.id}")
        return assistant

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def _reconcile(self, config: AssistantConfig) -> Assistant:
        config_id = str(config.id)
        openai_assistant_id = config.openai_assistant_id
        vector_store_id = config.openai_vector_store_id

        try:
            assistant = await self.client.beta.assistants.retrieve(openai_assistant_id)
            needs_update = False
            update: Dict[str, Any] = {}

            tools = _dump_tools(assistant)
            if not any(tool.get("type") == "file_search" for tool in tools):
                logger.info(f"Assistant {openai_assistant_id} missing file_search; adding")
                update["tools"] = tools + [FILE_SEARCH_TOOL]
                needs_update = True

            if not vector_store_id:
                vector_store_id = await self._create_missing_vector_store(config)
                needs_update = True

            tool_resources = _dump_tool_resources(assistant)
            file_search = tool_resources.get("file_search") or {}
            if vector_store_id not in (file_search.get("vector_store_ids") or []):
                logger.info(
                    f"Assistant {openai_assistant_id} not linked to vector store {vector_store_id}; relinking"
                )
                tool_resources["file_search"] = {**file_search, "vector_store_ids": [vector_store_id]}
                update["tool_resources"] = tool_resources
                needs_update = True

            if not needs_update:
                logger.debug(f"Assistant {openai_assistant_id} is up to date")
                return assistant

            update.setdefault("name", assistant.name)
            update.setdefault("instructions", assistant.instructions)
            update.setdefault("model", assistant.model)
            return await self.client.beta.assistants.update(openai_assistant_id, **update)

        except openai.NotFoundError as e:
            logger.error(
                f"Upstream assistant {openai_assistant_id} for config {config_id} no longer exists; clearing ids"
            )
            await self.assistant_repository.clear_openai_ids(config_id)
            raise AssistantProvisioningError(
                f"Upstream assistant {openai_assistant_id} not found. Cleared stored ids, please try again.",
                assistant_config_id=config_id,
                original_error=e,
            )
        except AssistantProvisioningError:
            raise
        except openai.OpenAIError as e:
            raise AssistantProvisioningError(
                f"Failed to process upstream assistant {openai_assistant_id}: {e}",
                assistant_config_id=config_id,
                original_error=e,
            )

    async def _create_missing_vector_store(self, config: AssistantConfig) -> str:
        name = config.name or DEFAULT_ASSISTANT_NAME
        config_id = str(config.id)
        vector_store = await self.client.vector_stores.create(
            name=f"VectorStore for {name} (DB ID: {config_id}, existing assistant {config.openai_assistant_id})",
        )
        try:
            await self.assistant_repository.set_vector_store_id(config_id, vector_store.id)
        except Exception as e:
            logger.error(f"Failed to record vector store {vector_store.id} for config {config_id}: {e}")
            await self._delete_quietly("vector store", self.client.vector_stores.delete, vector_store.id)
            raise AssistantProvisioningError(
                f"Failed to update database with new vector store ID: {e}",
                assistant_config_id=config_id,
                original_error=e,
            )
        logger.info(f"Created vector store {vector_store.id} for existing assistant {config.openai_assistant_id}")
        return vector_store.id

    async def _delete_quietly(self, kind: str, delete, resource_id: str) -> None:
        try:
            await delete(resource_id)
        except Exception as e:
            logger.error(f"Cleanup: failed to delete {kind} {resource_id}: {e}")


def _dump_tools(assistant: Assistant) -> List[Dict[str, Any]]:
    return [
        tool.model_dump(exclude_none=True) if hasattr(tool, "model_dump") else dict(tool)
        for tool in (assistant.tools or [])
    ]


def _dump_tool_resources(assistant: Assistant) -> Dict[str, Any]:
    resources = assistant.tool_resources
    if resources is None:
        return {}
    if hasattr(resources, "model_dump"):
        return resources.model_dump(exclude_none=True)
    return dict(resources)


class AssistantCache:
    """
    TTL cache of provisioned assistants keyed by configuration id.

    Entries expire after ASSISTANT_CACHE_TTL_SECONDS; a stale entry only
    delays noticing upstream drift until the next provisioning pass.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_size: Optional[int] = None,
        timer=None,
    ):
        kwargs = {"timer": timer} if timer is not None else {}
        self._cache: TTLCache = TTLCache(
            maxsize=max_size or settings.assistant_cache_max_size,
            ttl=ttl_seconds or settings.assistant_cache_ttl_seconds,
            **kwargs,
        )

    def get(self, config_id: str) -> Optional[Assistant]:
        return self._cache.get(str(config_id))

    def set(self, config_id: str, assistant: Assistant) -> None:
        self._cache[str(config_id)] = assistant

    def invalidate(self, config_id: str) -> None:
        self._cache.pop(str(config_id), None)

    def __len__(self) -> int:
        return len(self._cache)

    async def get_or_provision(self, config_id: str, provisioner: AssistantProvisioner) -> Assistant:
        """Return the cached assistant, provisioning and caching it on a miss."""
        cached = self.get(config_id)
        if cached is not None:
            logger.info(f"Assistant cache hit for config {config_id}")
            return cached

        logger.info(f"Assistant cache miss for config {config_id}; provisioning")
        assistant = await provisioner.get_openai_assistant(config_id)
        self.set(config_id, assistant)
        return assistant


_assistant_cache: Optional[AssistantCache] = None


def get_assistant_cache() -> AssistantCache:
    """Process-wide assistant cache."""
    global _assistant_cache
    if _assistant_cache is None:
        _assistant_cache = AssistantCache()
    return _assistant_cache
