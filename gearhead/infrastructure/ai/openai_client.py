"""
OpenAI client factory.
"""

import logging
from functools import lru_cache

from openai import AsyncOpenAI

from gearhead.config.settings import settings
from gearhead.infrastructure.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


@lru_cache
def get_openai_client() -> AsyncOpenAI:
    """
    Get the shared async OpenAI client.

    Raises:
        ConfigurationError: OPENAI_API_KEY is not set
    """
    if not settings.openai_api_key:
        raise ConfigurationError(
            "OpenAI API key not configured on server",
            missing_keys=["OPENAI_API_KEY"],
        )

    logger.info(f"OpenAI client initialized (chat model: {settings.openai_chat_model})")
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.openai_timeout_seconds,
        max_retries=settings.openai_max_retries,
    )
