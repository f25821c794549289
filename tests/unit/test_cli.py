"""Tests for the stream-fetch command line."""

from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from stream_fetch import HTTPNativeChannel, StreamFetchConfig
from stream_fetch.cli import _parse_headers, main

URL = "https://example.test/items"


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def serve(requests: list[httpx.Request]):
    """Patch the CLI's channel factory to answer with a MockTransport."""

    def install(response: httpx.Response | None = None, error: Exception | None = None):
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if error is not None:
                raise error
            return response or httpx.Response(200, content=b"hello")

        def create_channel(config: StreamFetchConfig) -> HTTPNativeChannel:
            http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            return HTTPNativeChannel(config, client=http_client)

        return patch("stream_fetch.cli._create_channel", side_effect=create_channel)

    return install


class TestParseHeaders:
    """Tests for -H parsing."""

    def test_parses_name_value(self) -> None:
        """Whitespace around names and values is stripped."""
        assert _parse_headers(("Accept:  text/plain ", "X-Id:1")) == {
            "Accept": "text/plain",
            "X-Id": "1",
        }


class TestMain:
    """Tests for the main command."""

    def test_writes_body_to_stdout(self, runner: CliRunner, serve) -> None:
        """The response body is streamed to stdout."""
        with serve():
            result = runner.invoke(main, [URL])

        assert result.exit_code == 0
        assert result.stdout_bytes == b"hello"

    def test_include_prints_status_line(self, runner: CliRunner, serve) -> None:
        """-i prints the status line and headers."""
        with serve(httpx.Response(200, headers={"x-trace": "abc"}, content=b"hello")):
            result = runner.invoke(main, [URL, "-i"])

        assert result.exit_code == 0
        assert "HTTP 200 OK" in result.output
        assert "x-trace: abc" in result.output
        assert "hello" in result.output

    def test_sends_json_body(
        self, runner: CliRunner, serve, requests: list[httpx.Request]
    ) -> None:
        """--json sends compact JSON with a JSON content type."""
        with serve():
            result = runner.invoke(main, [URL, "-X", "post", "--json", '{"a": 1}'])

        assert result.exit_code == 0
        assert requests[0].method == "POST"
        assert requests[0].content == b'{"a":1}'
        assert requests[0].headers["content-type"] == "application/json;charset=UTF-8"

    def test_sends_data_and_headers(
        self, runner: CliRunner, serve, requests: list[httpx.Request]
    ) -> None:
        """-d sends text as is; -H adds headers."""
        with serve():
            result = runner.invoke(
                main,
                [URL, "-X", "PUT", "-d", "a=1", "-H", "Content-Type: text/plain"],
            )

        assert result.exit_code == 0
        assert requests[0].content == b"a=1"
        assert requests[0].headers["content-type"] == "text/plain"

    def test_connection_failure_exits_1(self, runner: CliRunner, serve) -> None:
        """A request that could not be performed exits with status 1."""
        with serve(error=httpx.ConnectError("refused")):
            result = runner.invoke(main, [URL])

        assert result.exit_code == 1
        assert "Request failed" in result.output

    def test_bad_header_is_usage_error(self, runner: CliRunner) -> None:
        """Headers without a colon are rejected."""
        result = runner.invoke(main, [URL, "-H", "NoColon"])

        assert result.exit_code == 2
        assert "Name: value" in result.output

    def test_data_and_json_are_exclusive(self, runner: CliRunner) -> None:
        """--data and --json cannot be combined."""
        result = runner.invoke(main, [URL, "-d", "x", "--json", "{}"])

        assert result.exit_code == 2
        assert "mutually exclusive" in result.output

    def test_invalid_json_is_usage_error(self, runner: CliRunner) -> None:
        """--json must parse."""
        result = runner.invoke(main, [URL, "--json", "{nope"])

        assert result.exit_code == 2
