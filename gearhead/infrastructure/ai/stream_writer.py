"""
Stream Writer

In-process byte channel between a producer task (a stream handler) and the
HTTP response body. The producer writes text; the response drains bytes.
Closing ends the body normally, aborting ends it with an error so the
client sees a truncated transfer rather than a clean finish.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional


logger = logging.getLogger(__name__)

_END = object()
_ABORT = object()


class StreamClosedError(RuntimeError):
    """Raised when writing to a writer that was already closed or aborted."""


class StreamAbortedError(RuntimeError):
    """Raised from iter_bytes when the producer aborted the stream."""


class StreamWriter:
    """
    Single-producer, single-consumer text stream.

    The queue is unbounded: the producer never blocks on a slow or
    disconnected client, so it can always finish and persist its result.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._abort_reason: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, text: str) -> None:
        if self._closed:
            raise StreamClosedError("Stream writer is closed")
        if text:
            await self._queue.put(text.encode("utf-8"))

    async def close(self) -> None:
        """End the stream normally. Repeated calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_END)

    async def abort(self, reason: str) -> None:
        """End the stream with an error. No-op once closed."""
        if self._closed:
            return
        self._closed = True
        self._abort_reason = reason
        logger.warning(f"Stream aborted: {reason}")
        await self._queue.put(_ABORT)

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield encoded chunks until the producer closes or aborts."""
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if item is _ABORT:
                raise StreamAbortedError(self._abort_reason or "Stream aborted")
            yield item
