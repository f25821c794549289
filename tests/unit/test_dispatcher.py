"""Unit tests for request dispatch."""

from unittest.mock import AsyncMock

import pytest

from stream_fetch.channel import MockChannel
from stream_fetch.dispatcher import dispatch
from stream_fetch.errors import TransportError
from stream_fetch.protocol import RequestDescriptor


@pytest.fixture
def request_descriptor() -> RequestDescriptor:
    return RequestDescriptor(
        url="https://example.test/v1/items",
        method="post",
        headers={"content-type": "text/plain"},
        body=b"hi",
    )


class TestDispatch:
    """Tests for the single round trip."""

    @pytest.mark.asyncio
    async def test_returns_envelope(
        self, channel: MockChannel, request_descriptor: RequestDescriptor
    ) -> None:
        """A successful round trip yields the response envelope."""
        channel.set_response(
            "stream_fetch",
            {"request_id": 7, "status": 201, "status_text": "Created", "headers": {"x": "y"}},
        )

        envelope = await dispatch(channel, request_descriptor)

        assert envelope.request_id == 7
        assert envelope.status == 201
        assert envelope.status_text == "Created"
        assert envelope.headers == {"x": "y"}

    @pytest.mark.asyncio
    async def test_sends_request_once(
        self, channel: MockChannel, request_descriptor: RequestDescriptor
    ) -> None:
        """Exactly one invocation carries the normalized request."""
        await dispatch(channel, request_descriptor)

        assert channel.recorded_invocations == [
            (
                "stream_fetch",
                {
                    "url": "https://example.test/v1/items",
                    "method": "POST",
                    "headers": {"content-type": "text/plain"},
                    "body": [104, 105],
                },
            )
        ]

    @pytest.mark.asyncio
    async def test_custom_command_name(self, request_descriptor: RequestDescriptor) -> None:
        """The command name is configurable."""
        channel = AsyncMock()
        channel.invoke.return_value = {"request_id": 1, "status": 200}

        await dispatch(channel, request_descriptor, command="http_stream")

        assert channel.invoke.await_args.args[0] == "http_stream"

    @pytest.mark.asyncio
    async def test_invoke_failure_is_transport_error(
        self, channel: MockChannel, request_descriptor: RequestDescriptor
    ) -> None:
        """Any round trip failure surfaces as TransportError."""
        cause = ConnectionError("host unreachable")
        channel.set_error("stream_fetch", cause)

        with pytest.raises(TransportError, match="host unreachable") as exc_info:
            await dispatch(channel, request_descriptor)

        assert exc_info.value.__cause__ is cause

    @pytest.mark.asyncio
    async def test_invalid_metadata_is_transport_error(
        self, channel: MockChannel, request_descriptor: RequestDescriptor
    ) -> None:
        """A result without a request identifier is a transport failure."""
        channel.set_response("stream_fetch", {"status": 200})

        with pytest.raises(TransportError, match="invalid response metadata"):
            await dispatch(channel, request_descriptor)
