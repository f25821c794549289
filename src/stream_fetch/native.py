"""Native side of the command channel, backed by httpx.

Answers the stream fetch command the way a native host process would: it
performs the HTTP exchange itself, returns status and headers as soon as
they arrive, and pushes the body afterwards as chunk events on its feed.

Wire format:
- invoke("stream_fetch", {method, url, headers, body: [u8...]})
  -> {request_id, status, status_text, headers}
- event "stream-response": {request_id, chunk: [u8...]} per body chunk,
  then {request_id, status: 0}
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

import httpx

from .bus import EventCallback, EventFeed
from .config import StreamFetchConfig
from .protocol.commands import RequestDescriptor
from .protocol.events import ChunkEvent

logger = logging.getLogger(__name__)


class HTTPNativeChannel:
    """Command channel that runs requests with an httpx.AsyncClient.

    Body chunks are forwarded raw (still content-encoded) so they match the
    response headers returned by the round trip. Request identifiers are
    increasing integers starting at 1.

    Usage:
        async with HTTPNativeChannel() as channel:
            client = StreamFetchClient(channel)
            response = await client.fetch("https://example.com")
            body = await response.aread()
    """

    def __init__(
        self,
        config: StreamFetchConfig | None = None,
        client: httpx.AsyncClient | None = None,
        feed: EventFeed | None = None,
    ) -> None:
        self.config = config or StreamFetchConfig()
        self.feed = feed or EventFeed()
        self._client = client
        self._owns_client = client is None
        self._chunk_event = EventFeed.define(self.config.event, ChunkEvent)
        self._next_id = 0
        self._body_tasks: set[asyncio.Task[None]] = set()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout, read=None),
            )
        return self._client

    async def invoke(self, command: str, args: dict[str, Any]) -> dict[str, Any]:
        """Start an HTTP request and return its metadata.

        Raises:
            ValueError: If the command is unknown or the arguments are invalid
            httpx.HTTPError: If the request fails before response headers
        """
        if command != self.config.command:
            raise ValueError(f"Unknown command: {command}")

        request = RequestDescriptor.model_validate(args)
        client = self._get_client()
        http_request = client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body or None,
        )
        response = await client.send(http_request, stream=True)

        self._next_id += 1
        request_id = self._next_id
        logger.info(f"Request {request_id}: {request.method} {request.url} -> {response.status_code}")

        task = asyncio.create_task(self._forward_body(request_id, response))
        self._body_tasks.add(task)
        task.add_done_callback(self._body_tasks.discard)

        return {
            "request_id": request_id,
            "status": response.status_code,
            "status_text": response.reason_phrase,
            "headers": dict(response.headers),
        }

    async def listen(self, event: str, handler: EventCallback) -> Callable[[], None]:
        return await self.feed.listen(event, handler)

    async def _forward_body(self, request_id: int, response: httpx.Response) -> None:
        """Push the response body as chunk events, then the end marker.

        The end marker is published however forwarding stops, so readers
        never wait on a body that will not arrive.
        """
        try:
            if response.is_stream_consumed:
                # Transport already read the body (e.g. in-memory responses)
                if response.content:
                    await self.feed.publish(
                        self._chunk_event, ChunkEvent.data(request_id, response.content)
                    )
            else:
                async for chunk in response.aiter_raw():
                    if chunk:
                        await self.feed.publish(
                            self._chunk_event, ChunkEvent.data(request_id, chunk)
                        )
        except httpx.HTTPError as e:
            logger.error(f"Request {request_id}: body read failed: {e}")
        except Exception:
            logger.exception(f"Request {request_id}: body forwarding failed")
        finally:
            await response.aclose()
            await self.feed.publish(self._chunk_event, ChunkEvent.end(request_id))

    async def aclose(self) -> None:
        """Stop forwarding bodies and close the HTTP client if owned."""
        for task in list(self._body_tasks):
            task.cancel()
        for task in list(self._body_tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._body_tasks.clear()

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HTTPNativeChannel:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
