"""Event feed - shared pub/sub for out-of-band channel events.

One producer (the native side of a channel) publishes, any number of
subscribers listen. Every subscriber of an event type receives every event
of that type and filters for itself; each subscription is released through
the unsubscribe function returned when it was created.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass
class EventDefinition(Generic[T]):
    """Typed event definition.

    Usage:
        ChunkReceived = EventFeed.define("stream-response", ChunkEvent)
        await feed.publish(ChunkReceived, ChunkEvent.data(7, b"Hi"))
    """

    type: str
    schema: type[T]


# Type for event callbacks
EventCallback = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]


class EventFeed:
    """Simple event feed keyed by event type.

    Subscriber lists are guarded by an asyncio.Lock. Publishing awaits each
    subscriber in subscription order, so subscribers must not block.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventCallback]] = {}
        self._lock: asyncio.Lock | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the lock (lazy init for event loop safety)."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @staticmethod
    def define(event_type: str, schema: type[T]) -> EventDefinition[T]:
        """Define a typed event.

        Args:
            event_type: Event name (e.g., "stream-response")
            schema: Pydantic model for event properties

        Returns:
            EventDefinition that can be used with publish/subscribe
        """
        return EventDefinition(type=event_type, schema=schema)

    async def publish(self, event_def: EventDefinition[T], properties: T) -> None:
        """Publish event to all subscribers of its type.

        Args:
            event_def: The event definition (created via EventFeed.define)
            properties: Event properties (must match the schema)
        """
        payload = {"type": event_def.type, "properties": properties.model_dump()}

        async with self._get_lock():
            # Copy so subscribers can unsubscribe while being notified
            subscribers = list(self._subscriptions.get(event_def.type, []))

        for callback in subscribers:
            try:
                await callback(payload)
            except Exception:
                logger.exception(f"Error in subscriber for {event_def.type}")

    async def subscribe(
        self, event_def: EventDefinition[T], callback: EventCallback
    ) -> Callable[[], None]:
        """Subscribe to a specific event type.

        Args:
            event_def: The event definition to subscribe to
            callback: Async function called with event payload

        Returns:
            Unsubscribe function
        """
        return await self.listen(event_def.type, callback)

    async def listen(self, event_type: str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to an event type by name.

        Returns:
            Unsubscribe function (safe to call more than once)
        """
        async with self._get_lock():
            self._subscriptions.setdefault(event_type, []).append(callback)

        def unsubscribe() -> None:
            # Synchronous unsubscribe (safe because we're just removing)
            callbacks = self._subscriptions.get(event_type)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscriptions[event_type]

        return unsubscribe

    def subscriber_count(self, event_type: str) -> int:
        """Number of live subscriptions for an event type."""
        return len(self._subscriptions.get(event_type, []))
