"""Command channel abstraction.

A command channel is what stream fetch runs over. It offers exactly two
things:
- invoke: one request/response round trip returning a result dict
- listen: a subscription to a broadcast event feed

The client never sees the body in the round trip; the native side pushes it
as chunk events on the feed. Implementations:
- HTTPNativeChannel (native.py): performs real HTTP with httpx
- MockChannel: in-memory, for tests
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from .bus import EventCallback, EventFeed
from .config import DEFAULT_COMMAND, DEFAULT_EVENT
from .protocol.events import ChunkEvent


@runtime_checkable
class CommandChannel(Protocol):
    """Protocol for command channels."""

    async def invoke(self, command: str, args: dict[str, Any]) -> dict[str, Any]:
        """Run a command round trip.

        Raises:
            Exception: Any failure of the round trip
        """
        ...

    async def listen(self, event: str, handler: EventCallback) -> Callable[[], None]:
        """Subscribe to an event feed.

        Returns:
            Function releasing the subscription
        """
        ...


class MockChannel:
    """Mock channel for testing.

    Allows canned round trip results or failures, records invocations, and
    emits chunk events on demand. No actual I/O - everything is in-memory.

    Usage:
        channel = MockChannel()
        channel.set_response("stream_fetch", {"request_id": 7, "status": 200})

        client = StreamFetchClient(channel)
        response = await client.fetch("https://example.com")
        await channel.emit(7, chunk=b"Hi")
        await channel.emit(7, status=0)

        assert channel.recorded_invocations[0][0] == "stream_fetch"
    """

    def __init__(self, feed: EventFeed | None = None, event: str = DEFAULT_EVENT) -> None:
        self.feed = feed or EventFeed()
        self._event_def = EventFeed.define(event, ChunkEvent)
        self._responses: dict[str, dict[str, Any]] = {}
        self._errors: dict[str, Exception] = {}
        self._listen_error: Exception | None = None
        self._recorded: list[tuple[str, dict[str, Any]]] = []
        self._next_id = 0
        # Runs inside invoke() before it returns (e.g. to push early chunks)
        self.on_invoke: Callable[[str, dict[str, Any]], Awaitable[None]] | None = None

    @property
    def recorded_invocations(self) -> list[tuple[str, dict[str, Any]]]:
        """Get all (command, args) pairs invoked through this channel."""
        return self._recorded.copy()

    def set_response(self, command: str, result: dict[str, Any]) -> None:
        """Set the canned result for a command."""
        self._errors.pop(command, None)
        self._responses[command] = result

    def set_error(self, command: str, error: Exception) -> None:
        """Make a command fail with the given error."""
        self._responses.pop(command, None)
        self._errors[command] = error

    def fail_listen(self, error: Exception) -> None:
        """Make every subsequent listen() call fail."""
        self._listen_error = error

    def subscriber_count(self, event: str = DEFAULT_EVENT) -> int:
        return self.feed.subscriber_count(event)

    async def emit(
        self, request_id: int, chunk: bytes | list[int] | None = None, status: int | None = None
    ) -> None:
        """Push a chunk event to all listeners."""
        event = ChunkEvent.model_validate(
            {"request_id": request_id, "chunk": chunk, "status": status}
        )
        await self.feed.publish(self._event_def, event)

    async def invoke(self, command: str, args: dict[str, Any]) -> dict[str, Any]:
        """Record the invocation and return the canned result."""
        self._recorded.append((command, args))

        if self.on_invoke is not None:
            await self.on_invoke(command, args)

        if command in self._errors:
            raise self._errors[command]
        if command in self._responses:
            return self._responses[command]
        if command == DEFAULT_COMMAND:
            self._next_id += 1
            return {"request_id": self._next_id, "status": 200, "status_text": "OK", "headers": {}}
        raise ValueError(f"No mock response for command: {command}")

    async def listen(self, event: str, handler: EventCallback) -> Callable[[], None]:
        if self._listen_error is not None:
            raise self._listen_error
        return await self.feed.listen(event, handler)
