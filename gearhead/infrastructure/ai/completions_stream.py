"""
Chat completions stream handler.

Relays a streaming chat completion into a StreamWriter and stores the
full reply as an assistant message once the stream ends.
"""

import json
import logging
import time
from typing import Dict, List

from openai import AsyncOpenAI

from gearhead.domain.chat import MessageRole
from gearhead.infrastructure.ai.stream_writer import StreamWriter
from gearhead.infrastructure.db.repositories.chat_repository import ChatRepository


logger = logging.getLogger(__name__)


async def handle_completions_stream(
    client: AsyncOpenAI,
    chat_repository: ChatRepository,
    writer: StreamWriter,
    messages: List[Dict[str, str]],
    db_thread_id: str,
    db_assistant_id: str,
    user_id: str,
    model: str,
) -> str:
    """
    Stream a completion to the writer, then persist it.

    Args:
        client: OpenAI client
        chat_repository: Where the assistant reply is stored
        writer: Response channel; closed on success, left open on failure
        messages: System prompt, history and the new user turn
        db_thread_id: Thread the reply belongs to
        db_assistant_id: Assistant configuration id recorded on the reply
        user_id: Requesting user, recorded on the reply
        model: Chat model name

    Returns:
        The accumulated reply text

    Raises:
        Exception: provider errors, after an inline JSON error has been written.
            The writer stays open so the caller can abort it.
    """
    accumulated = ""
    started = time.perf_counter()
    logger.info(f"Starting completions stream for thread {db_thread_id}, model {model}")

    try:
        stream = await client.chat.completions.create(
            model=model,
            messages=messages,
            stream=True,
        )

        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            content = choice.delta.content if choice.delta else None
            if content:
                accumulated += content
                await writer.write(content)
            if choice.finish_reason:
                logger.info(f"Completions stream finished. Reason: {choice.finish_reason}")
                break

        logger.info(
            f"Completions stream ended after {(time.perf_counter() - started) * 1000:.0f}ms, "
            f"{len(accumulated)} chars"
        )
        await writer.close()

    except Exception as e:
        logger.error(f"Error during completions stream for thread {db_thread_id}: {e}")
        if not writer.closed:
            error_payload = json.dumps({"type": "error", "error": str(e) or "Stream failed"})
            await writer.write(error_payload)
        raise

    if accumulated.strip():
        try:
            await chat_repository.create_message(
                thread_id=db_thread_id,
                role=MessageRole.ASSISTANT,
                content=accumulated,
                user_id=user_id,
                assistant_id=db_assistant_id,
                completed=True,
            )
            logger.info(f"Assistant message saved for thread {db_thread_id}")
        except Exception as e:
            logger.error(f"Failed to save assistant message for thread {db_thread_id}: {e}")
    else:
        logger.info(f"No assistant content to save for thread {db_thread_id}")

    return accumulated
