"""Backpressured response body stream.

The correlator writes chunks in, the caller pulls them out through the
response object. Writes wait while the buffer is at its high-water mark.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Callable

import httpx

from .errors import SinkWriteError

logger = logging.getLogger(__name__)


class ResponseBodyStream(httpx.AsyncByteStream):
    """Pull-based byte stream used as the body of an httpx.Response.

    Two ways to end it:
    - finalize(): producer side, chunks already buffered stay readable
    - aclose(): consumer side, buffered chunks are discarded and the cancel
      callback fires so the producer can tear down

    Iteration is forward-only; a second iteration raises StreamConsumed.
    """

    def __init__(self, high_water_mark: int = 16) -> None:
        self._chunks: deque[bytes] = deque()
        self._high_water_mark = high_water_mark
        self._closed = False
        self._consumed = False
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()
        self._on_cancel: Callable[[], None] | None = None

    @property
    def closed(self) -> bool:
        """True once no more chunks can be written."""
        return self._closed

    @property
    def buffered(self) -> int:
        """Number of chunks written but not yet read."""
        return len(self._chunks)

    def is_ready(self) -> bool:
        """Check if a write would be accepted without waiting."""
        return not self._closed and len(self._chunks) < self._high_water_mark

    def set_cancel_callback(self, callback: Callable[[], None]) -> None:
        """Set the function called when the consumer closes the stream early."""
        self._on_cancel = callback

    async def write(self, chunk: bytes) -> None:
        """Append a chunk once the buffer has room.

        Raises:
            SinkWriteError: If the stream is closed, before or while waiting
        """
        while not self.is_ready():
            if self._closed:
                raise SinkWriteError(f"write of {len(chunk)} bytes to closed stream")
            self._writable.clear()
            await self._writable.wait()

        self._chunks.append(chunk)
        self._readable.set()

    def finalize(self) -> None:
        """End the stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        # Wake readers to drain and writers to fail
        self._readable.set()
        self._writable.set()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise httpx.StreamConsumed()
        self._consumed = True

        while True:
            if self._chunks:
                chunk = self._chunks.popleft()
                self._writable.set()
                yield chunk
                continue

            if self._closed:
                return

            self._readable.clear()
            await self._readable.wait()

    async def aclose(self) -> None:
        """Close from the consumer side, discarding unread chunks."""
        was_open = not self._closed
        if self._chunks:
            logger.debug(f"Discarding {len(self._chunks)} unread chunks")
            self._chunks.clear()
        self.finalize()
        if was_open and self._on_cancel is not None:
            self._on_cancel()
