"""Chunk event correlation.

Binds chunk events from the shared feed to the request they belong to.

The subscription is made before the request identifier exists, because the
native side may push chunks before the round trip that reports the
identifier completes. Events are queued in arrival order and only examined
once the identifier future resolves, so either completion order works
without dropping or misrouting chunks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from .channel import CommandChannel
from .errors import SinkWriteError, SubscriptionSetupError
from .lifecycle import StreamLifecycle
from .protocol.events import ChunkEvent
from .sink import ResponseBodyStream

logger = logging.getLogger(__name__)


class ChunkCorrelator:
    """Routes one request's chunk events from the feed into its body stream.

    - handle() is the feed callback; it only validates and enqueues
    - resolve() delivers the request identifier from the round trip
    - a pump task waits for the identifier, then drains the queue in order:
      foreign events are skipped, payloads are written (waiting for the
      stream to accept them), and the end-of-body marker closes the stream
    """

    def __init__(self, sink: ResponseBodyStream, lifecycle: StreamLifecycle) -> None:
        self._sink = sink
        self._lifecycle = lifecycle
        self._request_id: asyncio.Future[int] = asyncio.get_running_loop().create_future()
        self._inbox: asyncio.Queue[ChunkEvent] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        lifecycle.on_close(self._stop)

    @property
    def request_id(self) -> int | None:
        """The request identifier, or None while the round trip is pending."""
        if self._request_id.done() and not self._request_id.cancelled():
            return self._request_id.result()
        return None

    async def subscribe(self, channel: CommandChannel, event: str) -> None:
        """Subscribe to the chunk event feed and hand the subscription over.

        Raises:
            SubscriptionSetupError: If the channel refuses the subscription
        """
        try:
            unsubscribe = await channel.listen(event, self.handle)
        except Exception as e:
            raise SubscriptionSetupError(f"Failed to listen for {event!r}: {e}") from e
        self._lifecycle.attach_subscription(unsubscribe)

    def start(self) -> None:
        """Start draining queued events into the body stream."""
        if self._task is None and not self._lifecycle.closed:
            self._task = asyncio.create_task(self._pump())

    def resolve(self, request_id: int) -> None:
        """Deliver the request identifier. Only the first call has effect."""
        if not self._request_id.done():
            self._request_id.set_result(request_id)

    async def handle(self, payload: dict[str, Any]) -> None:
        """Feed callback: queue a chunk event for this request's pump."""
        if self._lifecycle.closed:
            return
        try:
            event = ChunkEvent.model_validate(payload.get("properties", payload))
        except ValidationError as e:
            logger.warning(f"Dropping malformed chunk event: {e}")
            return

        # Once the identifier is known, other requests' events need not be queued
        request_id = self.request_id
        if request_id is not None and event.request_id != request_id:
            return
        self._inbox.put_nowait(event)

    async def _pump(self) -> None:
        request_id = await self._request_id

        while True:
            event = await self._inbox.get()
            if event.request_id != request_id:
                continue

            if event.has_payload():
                try:
                    await self._sink.write(event.chunk)
                except SinkWriteError as e:
                    logger.warning(f"Request {request_id}: {e}, closing stream")
                    self._lifecycle.close()
                    return

            if event.is_end_of_body():
                logger.debug(f"Request {request_id}: end of body")
                self._lifecycle.close()
                return

    def _stop(self) -> None:
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        if not self._request_id.done():
            self._request_id.cancel()
