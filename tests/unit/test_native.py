"""Unit tests for the httpx-backed native channel.

Requests are answered by httpx.MockTransport; the client side runs for real.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from stream_fetch import HTTPNativeChannel, Json, StreamFetchClient, StreamFetchConfig

URL = "https://example.test/v1/stream"

Handler = Callable[[httpx.Request], httpx.Response]


def make_channel(handler: Handler, config: StreamFetchConfig | None = None) -> HTTPNativeChannel:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPNativeChannel(config, client=http_client)


async def read(response: httpx.Response) -> bytes:
    return await asyncio.wait_for(response.aread(), timeout=1.0)


class TestRoundTrip:
    """Tests for invoke() metadata and chunk forwarding."""

    @pytest.mark.asyncio
    async def test_fetch_through_native_channel(self) -> None:
        """The body arrives via chunk events and is reassembled in order."""

        async def body() -> AsyncIterator[bytes]:
            yield b"data: one\n\n"
            yield b"data: two\n\n"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

        async with make_channel(handler) as channel:
            client = StreamFetchClient(channel)
            response = await client.fetch(URL)

            assert response.status_code == 200
            assert response.reason_phrase == "OK"
            assert response.headers["content-type"] == "text/event-stream"
            assert await read(response) == b"data: one\n\ndata: two\n\n"
            assert channel.feed.subscriber_count("stream-response") == 0

    @pytest.mark.asyncio
    async def test_request_forwarded(self) -> None:
        """Method, headers and body reach the HTTP layer unchanged."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        async with make_channel(handler) as channel:
            client = StreamFetchClient(channel)
            response = await client.fetch(
                URL, method="post", headers={"X-Api-Key": "k"}, body=Json({"stream": True})
            )
            await read(response)

        assert seen[0].method == "POST"
        assert str(seen[0].url) == URL
        assert seen[0].headers["x-api-key"] == "k"
        assert seen[0].headers["content-type"] == "application/json;charset=UTF-8"
        assert seen[0].content == b'{"stream":true}'

    @pytest.mark.asyncio
    async def test_request_ids_increase(self) -> None:
        """Each request gets the next identifier, starting at 1."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"")

        async with make_channel(handler) as channel:
            args = {"url": URL, "method": "GET", "headers": {}, "body": []}
            first = await channel.invoke("stream_fetch", args)
            second = await channel.invoke("stream_fetch", args)

        assert first["request_id"] == 1
        assert second["request_id"] == 2

    @pytest.mark.asyncio
    async def test_error_status_body_delivered(self) -> None:
        """An error body that arrives within the grace delay is kept."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, content=b"no such thing")

        config = StreamFetchConfig(error_close_delay=1.0)
        async with make_channel(handler, config) as channel:
            client = StreamFetchClient(channel, config)
            response = await client.fetch(URL)

            assert response.status_code == 404
            assert await read(response) == b"no such thing"


class TestFailures:
    """Tests for requests the native side cannot perform."""

    @pytest.mark.asyncio
    async def test_unknown_command(self) -> None:
        """Commands other than the configured one are rejected."""
        async with make_channel(lambda request: httpx.Response(200)) as channel:
            with pytest.raises(ValueError, match="Unknown command"):
                await channel.invoke("open_window", {})

    @pytest.mark.asyncio
    async def test_connection_failure_becomes_synthetic_response(self) -> None:
        """A failed connection surfaces to callers as the 599 response."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with make_channel(handler) as channel:
            client = StreamFetchClient(channel)
            response = await client.fetch(URL)

            assert response.status_code == 599
            assert await read(response) == b""
            assert channel.feed.subscriber_count("stream-response") == 0

    @pytest.mark.asyncio
    async def test_body_failure_still_ends_stream(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A body that fails mid-read still terminates the caller's stream."""

        async def body() -> AsyncIterator[bytes]:
            yield b"partial"
            raise RuntimeError("upstream went away")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        async with make_channel(handler) as channel:
            client = StreamFetchClient(channel)
            response = await client.fetch(URL)

            assert await read(response) == b"partial"
            assert channel.feed.subscriber_count("stream-response") == 0

        assert "body forwarding failed" in caplog.text

    @pytest.mark.asyncio
    async def test_already_read_body_forwarded(self) -> None:
        """Responses whose body the transport already read are forwarded whole."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"in memory")

        async with make_channel(handler) as channel:
            client = StreamFetchClient(channel)
            response = await client.fetch(URL)

            assert await read(response) == b"in memory"

    @pytest.mark.asyncio
    async def test_aclose_stops_body_forwarding(self) -> None:
        """Closing the channel cancels bodies still being forwarded."""
        never = asyncio.Event()

        async def body() -> AsyncIterator[bytes]:
            yield b"partial"
            await never.wait()
            yield b"unreachable"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        channel = make_channel(handler)
        await channel.invoke("stream_fetch", {"url": URL, "method": "GET", "headers": {}, "body": []})
        await asyncio.sleep(0.01)
        assert len(channel._body_tasks) == 1

        await channel.aclose()

        assert channel._body_tasks == set()
