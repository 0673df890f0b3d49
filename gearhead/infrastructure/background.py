"""
Fire-and-forget task helpers.

Detached work (stream producers, best-effort writes, batch jobs) runs as
asyncio tasks that outlive the request. References are held here until
each task finishes so the event loop does not garbage-collect them.
Failures are logged, never raised to a caller.
"""

import asyncio
import logging
from typing import Any, Coroutine, Set

from gearhead.infrastructure.ai.stream_writer import StreamWriter


logger = logging.getLogger(__name__)

_background_tasks: Set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.warning(f"Background task {task.get_name()} was cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}", exc_info=exc)


def spawn(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """Schedule a coroutine detached from the current request."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


def spawn_stream_producer(
    writer: StreamWriter,
    coro: Coroutine[Any, Any, Any],
    name: str,
) -> asyncio.Task:
    """
    Run a stream handler detached; abort the writer if it fails while open.
    """

    async def _run() -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"Stream producer {name} failed: {e}")
            if not writer.closed:
                await writer.abort(str(e) or e.__class__.__name__)

    return spawn(_run(), name)


async def drain_background_tasks() -> None:
    """Wait for outstanding detached tasks on the running loop (shutdown and tests)."""
    loop = asyncio.get_running_loop()
    while True:
        pending = [task for task in _background_tasks if task.get_loop() is loop]
        if not pending:
            return
        await asyncio.gather(*pending, return_exceptions=True)
