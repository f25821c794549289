"""Per-request stream lifecycle.

Owns the single idempotent close operation every close trigger funnels
into: end-of-body event, caller cancellation, consumer closing the body,
failed round trip, failed subscription, and the error-status grace timer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from .sink import ResponseBodyStream

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    """Stream state machine. CLOSED is reachable from any state."""

    AWAITING_ID = "awaiting_id"
    STREAMING = "streaming"
    CLOSED = "closed"


class StreamLifecycle:
    """Lifecycle controller for one request's body stream.

    Closing, in order: marks the state CLOSED, releases the chunk event
    subscription, finalizes the body stream, then runs close callbacks.
    Closing again is a no-op.
    """

    def __init__(self, sink: ResponseBodyStream, name: str = "stream") -> None:
        self._sink = sink
        self._name = name
        self._state = StreamState.AWAITING_ID
        self._unsubscribe: Callable[[], None] | None = None
        self._close_callbacks: list[Callable[[], None]] = []
        self._close_timer: asyncio.TimerHandle | None = None
        self._cancel_watcher: asyncio.Task[None] | None = None
        sink.set_cancel_callback(self._on_consumer_close)

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state == StreamState.CLOSED

    def rename(self, name: str) -> None:
        """Set the name used in log messages (e.g. once the id is known)."""
        self._name = name

    def attach_subscription(self, unsubscribe: Callable[[], None]) -> None:
        """Take ownership of the chunk event subscription.

        If the stream closed while the subscription was being set up, it is
        released right away.
        """
        if self.closed:
            unsubscribe()
            return
        self._unsubscribe = unsubscribe

    def on_close(self, callback: Callable[[], None]) -> None:
        """Register a function to run once the stream closes."""
        self._close_callbacks.append(callback)

    def mark_streaming(self) -> None:
        """Record that the request identifier is known."""
        if self._state == StreamState.AWAITING_ID:
            self._state = StreamState.STREAMING

    def close(self) -> None:
        """Close the stream. Idempotent."""
        if self.closed:
            return
        self._state = StreamState.CLOSED
        logger.debug(f"{self._name}: closing")

        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            try:
                unsubscribe()
            except Exception:
                logger.exception(f"{self._name}: failed to release chunk subscription")

        self._sink.finalize()

        if self._close_timer is not None:
            self._close_timer.cancel()
            self._close_timer = None
        if self._cancel_watcher is not None and self._cancel_watcher is not _current_task():
            self._cancel_watcher.cancel()

        for callback in self._close_callbacks:
            callback()
        self._close_callbacks.clear()

    def schedule_close(self, delay: float) -> None:
        """Close after a grace delay, letting in-flight chunks land first."""
        if self.closed or self._close_timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._close_timer = loop.call_later(delay, self.close)

    def watch(self, cancel: asyncio.Event) -> None:
        """Close as soon as the caller's cancellation event is set."""
        if cancel.is_set():
            logger.debug(f"{self._name}: cancelled before start")
            self.close()
            return
        self._cancel_watcher = asyncio.create_task(self._wait_for_cancel(cancel))

    async def _wait_for_cancel(self, cancel: asyncio.Event) -> None:
        await cancel.wait()
        logger.debug(f"{self._name}: cancelled by caller")
        self.close()

    def _on_consumer_close(self) -> None:
        logger.debug(f"{self._name}: body closed by consumer")
        self.close()


def _current_task() -> asyncio.Task[object] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
