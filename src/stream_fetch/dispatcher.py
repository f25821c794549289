"""Request dispatch - the single round trip of a stream fetch."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from .channel import CommandChannel
from .config import DEFAULT_COMMAND
from .errors import TransportError
from .protocol.commands import RequestDescriptor, ResponseEnvelope

logger = logging.getLogger(__name__)


async def dispatch(
    channel: CommandChannel,
    request: RequestDescriptor,
    command: str = DEFAULT_COMMAND,
) -> ResponseEnvelope:
    """Send a request over the channel and wait for its response metadata.

    This is the only place the request identifier comes from; until it
    returns, nobody knows which chunk events belong to the request.

    Args:
        channel: The command channel
        request: The request to send
        command: Round trip command name

    Returns:
        The response envelope (status, headers, request identifier)

    Raises:
        TransportError: If the round trip fails or returns malformed metadata
    """
    logger.debug(f"Dispatching {request.method} {request.url} via {command}")

    try:
        result = await channel.invoke(command, request.to_args())
    except Exception as e:
        raise TransportError(f"{command} failed: {e}") from e

    try:
        envelope = ResponseEnvelope.model_validate(result)
    except ValidationError as e:
        raise TransportError(f"{command} returned invalid response metadata: {e}") from e

    logger.debug(
        f"Request {envelope.request_id}: {envelope.status} {envelope.status_text}".rstrip()
    )
    return envelope
