"""
Vector store file indexing.
"""

import asyncio
import logging
import time
from typing import Optional

import openai
from openai import AsyncOpenAI

from gearhead.config.settings import settings
from gearhead.infrastructure.exceptions import VectorStoreProcessingError


logger = logging.getLogger(__name__)

TERMINAL_FAILURE_STATUSES = ("failed", "cancelled")


async def wait_for_vector_store_file(
    client: AsyncOpenAI,
    vector_store_id: str,
    file_id: str,
    timeout_seconds: Optional[float] = None,
    interval_seconds: Optional[float] = None,
) -> None:
    """
    Poll a vector store file until indexing completes.

    Args:
        client: OpenAI client
        vector_store_id: Vector store the file was attached to
        file_id: Upstream file id
        timeout_seconds: Give up after this long (VECTOR_STORE_POLL_TIMEOUT_SECONDS)
        interval_seconds: Delay between polls (VECTOR_STORE_POLL_INTERVAL_SECONDS)

    Raises:
        VectorStoreProcessingError: status became failed/cancelled, or timed out
    """
    timeout = timeout_seconds if timeout_seconds is not None else settings.vector_store_poll_timeout_seconds
    interval = interval_seconds if interval_seconds is not None else settings.vector_store_poll_interval_seconds
    deadline = time.monotonic() + timeout

    last_error: Optional[str] = None

    while True:
        try:
            vs_file = await client.vector_stores.files.retrieve(file_id, vector_store_id=vector_store_id)
        except openai.APIError as e:
            # Transient lookup failures are retried until the deadline
            last_error = str(e)
            logger.warning(f"Polling vector store file {file_id} failed: {e}")
        else:
            logger.info(f"Vector store file {file_id} status: {vs_file.status}")

            if vs_file.status == "completed":
                return

            if vs_file.status in TERMINAL_FAILURE_STATUSES:
                reason = getattr(vs_file.last_error, "message", None) or "unknown error"
                raise VectorStoreProcessingError(
                    f"File processing {vs_file.status} for {file_id}: {reason}",
                    operation="vector_store_file",
                )

        if time.monotonic() >= deadline:
            suffix = f" Last error: {last_error}" if last_error else ""
            raise VectorStoreProcessingError(
                f"Timed out after {timeout:.0f}s waiting for vector store file {file_id}.{suffix}",
                operation="vector_store_file",
            )

        await asyncio.sleep(interval)
