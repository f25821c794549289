"""Stream fetch client.

Gives callers a plain request/streaming-response API on top of a command
channel that only offers a metadata round trip plus a chunk event feed.

Flow of one fetch():
1. Encode the body and build the request descriptor
2. Subscribe to the chunk feed (before the request identifier exists)
3. Dispatch the round trip; its result resolves the identifier
4. Return an httpx.Response whose body is fed by the correlator

Every outcome is a response object. A failed round trip becomes a
synthetic response with the reserved error status and an empty body.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from .body import Body, encode_body
from .channel import CommandChannel
from .config import StreamFetchConfig
from .correlator import ChunkCorrelator
from .dispatcher import dispatch
from .errors import SubscriptionSetupError, TransportError
from .lifecycle import StreamLifecycle
from .protocol.commands import RequestDescriptor, ResponseEnvelope
from .sink import ResponseBodyStream

logger = logging.getLogger(__name__)


class StreamFetchClient:
    """Fetch client running over a command channel.

    Without a channel, requests go straight out through an
    httpx.AsyncClient, with the same body encoding and response type.

    Usage:
        client = StreamFetchClient(channel)
        response = await client.fetch("https://example.com/v1/chat", method="POST",
                                      body=Json({"stream": True}))
        async for chunk in response.aiter_bytes():
            ...
    """

    def __init__(
        self,
        channel: CommandChannel | None = None,
        config: StreamFetchConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or StreamFetchConfig()
        self._channel = channel
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._watchers: set[asyncio.Task[None]] = set()

    @property
    def channel(self) -> CommandChannel | None:
        return self._channel

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        body: Body = None,
        cancel: asyncio.Event | None = None,
    ) -> httpx.Response:
        """Send a request and return its response with a streaming body.

        Args:
            url: Target URL
            method: HTTP method (case-insensitive)
            headers: Request headers, overriding the configured defaults
            body: Request payload (str, bytes, Form, Blob, Json or None)
            cancel: Event that closes the body stream when set

        Returns:
            An httpx.Response; read its body with aread()/aiter_bytes()
        """
        request_headers = httpx.Headers(self.config.default_headers)
        for key, value in (headers or {}).items():
            request_headers[key] = value

        content = encode_body(body, request_headers)
        request = RequestDescriptor(
            url=url,
            method=method,
            headers=dict(request_headers.items()),
            body=content,
        )
        http_request = httpx.Request(
            request.method, request.url, headers=request.headers, content=request.body or None
        )

        logger.debug(f"URL: {request.url}")
        logger.debug(f"Method: {request.method}")
        logger.debug(f"Headers: {request.headers}")

        if self._channel is None:
            return await self._fetch_direct(http_request, cancel)
        return await self._fetch_via_channel(self._channel, request, http_request, cancel)

    async def _fetch_via_channel(
        self,
        channel: CommandChannel,
        request: RequestDescriptor,
        http_request: httpx.Request,
        cancel: asyncio.Event | None,
    ) -> httpx.Response:
        sink = ResponseBodyStream(high_water_mark=self.config.high_water_mark)
        lifecycle = StreamLifecycle(sink, name=f"{request.method} {request.url}")
        correlator = ChunkCorrelator(sink, lifecycle)

        if cancel is not None:
            lifecycle.watch(cancel)

        try:
            envelope = await self._subscribe_and_dispatch(channel, request, correlator, lifecycle)
        except TransportError as e:
            logger.error(f"Stream fetch error: {e}")
            lifecycle.close()
            envelope = ResponseEnvelope.synthetic(
                self.config.error_status, self.config.error_status_text
            )
            return self._build_response(envelope, sink, http_request)
        except BaseException:
            # Cancelled before the identifier arrived; nothing else would release the stream
            lifecycle.close()
            raise

        lifecycle.rename(f"Request {envelope.request_id}")
        correlator.resolve(envelope.request_id)
        lifecycle.mark_streaming()

        if envelope.is_error:
            lifecycle.schedule_close(self.config.error_close_delay)

        return self._build_response(envelope, sink, http_request)

    async def _subscribe_and_dispatch(
        self,
        channel: CommandChannel,
        request: RequestDescriptor,
        correlator: ChunkCorrelator,
        lifecycle: StreamLifecycle,
    ) -> ResponseEnvelope:
        try:
            await correlator.subscribe(channel, self.config.event)
        except SubscriptionSetupError as e:
            logger.error(f"{e}; body will be empty")
            lifecycle.close()
        correlator.start()

        return await dispatch(channel, request, self.config.command)

    async def _fetch_direct(
        self, http_request: httpx.Request, cancel: asyncio.Event | None
    ) -> httpx.Response:
        client = self._get_http_client()
        try:
            response = await client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Direct fetch error: {e}")
            sink = ResponseBodyStream()
            sink.finalize()
            envelope = ResponseEnvelope.synthetic(
                self.config.error_status, self.config.error_status_text
            )
            return self._build_response(envelope, sink, http_request)

        if cancel is not None:
            watcher = asyncio.create_task(self._close_on_cancel(response, cancel))
            self._watchers.add(watcher)
            watcher.add_done_callback(self._watchers.discard)
        return response

    async def _close_on_cancel(self, response: httpx.Response, cancel: asyncio.Event) -> None:
        await cancel.wait()
        await response.aclose()

    def _build_response(
        self,
        envelope: ResponseEnvelope,
        sink: ResponseBodyStream,
        http_request: httpx.Request,
    ) -> httpx.Response:
        return httpx.Response(
            status_code=envelope.status,
            headers=envelope.headers,
            stream=sink,
            request=http_request,
            extensions={"reason_phrase": envelope.status_text.encode("ascii", errors="replace")},
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout, read=None),
            )
        return self._http_client

    async def aclose(self) -> None:
        """Stop cancel watchers and close the direct HTTP client if owned."""
        for watcher in list(self._watchers):
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher

        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> StreamFetchClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


def create_client(
    channel: CommandChannel | None = None,
    config: StreamFetchConfig | None = None,
) -> StreamFetchClient:
    """Create a stream fetch client.

    Args:
        channel: Command channel to run over (None sends requests directly)
        config: Client configuration (default: from STREAM_FETCH_* environment)

    Returns:
        StreamFetchClient
    """
    return StreamFetchClient(channel, config or StreamFetchConfig.from_env())
