"""
Assistant thread stream handler.

Posts the user turn to an upstream thread, starts a streaming run and
relays text deltas into a StreamWriter. Whatever text arrived is stored
as an assistant message when the run ends, even if it ended in failure.
"""

import logging
import time
from typing import Any, Optional

from openai import AsyncOpenAI

from gearhead.domain.chat import MessageRole
from gearhead.infrastructure.ai.stream_writer import StreamClosedError, StreamWriter
from gearhead.infrastructure.db.repositories.chat_repository import ChatRepository
from gearhead.infrastructure.exceptions import AIServiceError


logger = logging.getLogger(__name__)

RUN_FAILED_FALLBACK = "Assistant encountered an error."


class RunFailedError(AIServiceError):
    """The upstream run reported thread.run.failed."""


class RunState:
    """What the event loop has seen so far."""

    def __init__(self, openai_thread_id: str):
        self.run_id: Optional[str] = None
        self.thread_id: Optional[str] = openai_thread_id
        self.content = ""

    def metadata(self) -> dict:
        return {
            "openai_message_id": None,
            "openai_run_id": self.run_id,
            "openai_thread_id": self.thread_id,
        }


def _text_delta(event: Any) -> Optional[str]:
    blocks = getattr(event.data.delta, "content", None) or []
    if not blocks:
        return None
    block = blocks[0]
    if getattr(block, "type", None) != "text" or not getattr(block, "text", None):
        return None
    return block.text.value


def _failure_reason(event: Any) -> str:
    last_error = getattr(event.data, "last_error", None)
    return getattr(last_error, "message", None) or RUN_FAILED_FALLBACK


async def _consume_run(
    client: AsyncOpenAI,
    openai_thread_id: str,
    openai_assistant_id: str,
    content: str,
    state: RunState,
    writer: Optional[StreamWriter],
) -> None:
    """Drive one run to completion, updating state and forwarding deltas."""
    await client.beta.threads.messages.create(
        openai_thread_id,
        role="user",
        content=content,
    )

    run_stream = await client.beta.threads.runs.create(
        openai_thread_id,
        assistant_id=openai_assistant_id,
        stream=True,
    )

    started = time.perf_counter()
    first_chunk = True

    async for event in run_stream:
        if event.event == "thread.run.created":
            state.run_id = event.data.id
            state.thread_id = event.data.thread_id
            logger.info(f"Run {state.run_id} created on thread {state.thread_id}")

        elif event.event == "thread.message.delta":
            chunk = _text_delta(event)
            if chunk:
                if first_chunk:
                    logger.info(f"First chunk after {(time.perf_counter() - started) * 1000:.0f}ms")
                    first_chunk = False
                state.content += chunk
                if writer is not None:
                    await writer.write(chunk)

        elif event.event == "thread.run.failed":
            reason = _failure_reason(event)
            logger.error(f"Run {state.run_id} failed: {reason}")
            if writer is not None and not writer.closed:
                await writer.write(f"Sorry, {reason}")
            raise RunFailedError(f"OpenAI run failed: {reason}", operation="run")

        elif event.event == "thread.run.completed":
            logger.info(f"Run {event.data.id} completed")
            state.run_id = state.run_id or event.data.id
            state.thread_id = state.thread_id or event.data.thread_id


async def handle_assistant_stream(
    client: AsyncOpenAI,
    chat_repository: ChatRepository,
    writer: StreamWriter,
    openai_thread_id: str,
    openai_assistant_id: str,
    content: str,
    db_thread_id: str,
    db_assistant_id: str,
) -> str:
    """
    Stream an assistant run to the writer.

    Args:
        client: OpenAI client
        chat_repository: Where the assistant reply is stored
        writer: Response channel; always closed on return
        openai_thread_id: Upstream thread to post to
        openai_assistant_id: Upstream assistant to run
        content: Final user turn, with prompt and file preamble applied
        db_thread_id: Thread the reply belongs to
        db_assistant_id: Assistant configuration id recorded on the reply

    Returns:
        The accumulated reply text

    Raises:
        RunFailedError: the run reported failure ("Sorry, <reason>" was written)
        Exception: any other error ("Sorry, an error occurred: ..." was written)
    """
    state = RunState(openai_thread_id)
    logger.info(
        f"Starting assistant stream. OpenAI thread {openai_thread_id}, "
        f"assistant {openai_assistant_id}, DB thread {db_thread_id}"
    )

    try:
        await _consume_run(client, openai_thread_id, openai_assistant_id, content, state, writer)

        if not state.content and state.run_id:
            logger.warning(f"Run {state.run_id} ended with no text content")

    except RunFailedError:
        raise

    except StreamClosedError:
        logger.error(f"Writer closed while streaming thread {db_thread_id}")
        raise

    except Exception as e:
        logger.error(f"Error during assistant stream for thread {db_thread_id}: {e}")
        if not writer.closed:
            message = f"Sorry, an error occurred: {e}" if str(e) else (
                "Sorry, an unexpected error occurred while processing your request."
            )
            await writer.write(message)
        raise

    finally:
        if state.content:
            try:
                await chat_repository.create_message(
                    thread_id=db_thread_id,
                    role=MessageRole.ASSISTANT,
                    content=state.content,
                    user_id=None,
                    assistant_id=db_assistant_id,
                    completed=True,
                    metadata=state.metadata(),
                )
                logger.info(f"Assistant message saved for thread {db_thread_id}")
            except Exception as e:
                logger.error(f"Failed to save assistant message for thread {db_thread_id}: {e}")
        await writer.close()

    return state.content


async def collect_assistant_response(
    client: AsyncOpenAI,
    openai_thread_id: str,
    openai_assistant_id: str,
    content: str,
) -> str:
    """
    Run an assistant without streaming to a client and return its reply.

    Raises:
        RunFailedError: the run reported failure
        AIServiceError: the stream produced neither a run nor any content
    """
    state = RunState(openai_thread_id)
    await _consume_run(client, openai_thread_id, openai_assistant_id, content, state, None)

    if not state.run_id and not state.content:
        raise AIServiceError(
            "Assistant run produced no response",
            operation="collect_response",
        )
    return state.content
