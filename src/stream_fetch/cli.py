"""stream-fetch CLI.

Runs one request through the native channel and streams the body to stdout.

Usage:
    stream-fetch https://example.com
    stream-fetch https://example.com/api -X POST --json '{"stream": true}'
    stream-fetch https://example.com/form -d 'a=1&b=2' -H 'Content-Type: application/x-www-form-urlencoded'
    stream-fetch https://example.com -i        # status and headers to stderr
    stream-fetch https://example.com -v        # debug logging to stderr
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click

from .body import Body, Json
from .client import StreamFetchClient
from .config import StreamFetchConfig
from .native import HTTPNativeChannel


def _parse_headers(raw_headers: tuple[str, ...]) -> dict[str, str]:
    """Parse "Name: value" header options."""
    headers: dict[str, str] = {}
    for raw in raw_headers:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value', got {raw!r}", param_hint="--header")
        headers[name.strip()] = value.strip()
    return headers


def _create_channel(config: StreamFetchConfig) -> HTTPNativeChannel:
    return HTTPNativeChannel(config)


async def _run(
    config: StreamFetchConfig,
    url: str,
    method: str,
    headers: dict[str, str],
    body: Body,
    include: bool,
) -> int:
    async with _create_channel(config) as channel:
        client = StreamFetchClient(channel, config)
        response = await client.fetch(url, method=method, headers=headers, body=body)

        if include:
            click.echo(f"HTTP {response.status_code} {response.reason_phrase}".rstrip(), err=True)
            for name, value in response.headers.items():
                click.echo(f"{name}: {value}", err=True)
            click.echo("", err=True)

        stdout = click.get_binary_stream("stdout")
        async for chunk in response.aiter_bytes():
            stdout.write(chunk)
            stdout.flush()

        return response.status_code


@click.command()
@click.argument("url")
@click.option("-X", "--request", "method", default="GET", help="HTTP method")
@click.option("-H", "--header", "raw_headers", multiple=True, help="Header as 'Name: value'")
@click.option("-d", "--data", help="Request body as text")
@click.option("--json", "json_data", help="Request body as JSON")
@click.option("-i", "--include", is_flag=True, help="Print status and headers to stderr")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds")
def main(
    url: str,
    method: str,
    raw_headers: tuple[str, ...],
    data: str | None,
    json_data: str | None,
    include: bool,
    verbose: bool,
    timeout: float | None,
) -> None:
    """Fetch URL through a stream fetch channel and write the body to stdout.

    Exits with status 1 when the request could not be performed.
    """
    if data is not None and json_data is not None:
        raise click.UsageError("--data and --json are mutually exclusive")

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(name)s: %(message)s",
        stream=sys.stderr,
    )

    headers = _parse_headers(raw_headers)

    body: Body = data
    if json_data is not None:
        try:
            body = Json(json.loads(json_data))
        except json.JSONDecodeError as e:
            raise click.BadParameter(str(e), param_hint="--json") from e

    config = StreamFetchConfig.from_env()
    if timeout is not None:
        config.timeout = timeout

    try:
        status = asyncio.run(_run(config, url, method, headers, body, include))
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(130)

    if status == config.error_status:
        click.echo(f"Request failed: {config.error_status_text}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
