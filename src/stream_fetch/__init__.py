"""stream-fetch - streaming HTTP responses over a command channel.

For hosts whose native side can only answer a command with metadata and
push the response body separately as events tagged with a request id.
The client reassembles those events into an ordinary httpx.Response with a
lazily produced, backpressured body.

Channels:
- HTTPNativeChannel: in-process native side performing real HTTP via httpx
- MockChannel: in-memory, for tests
- anything implementing CommandChannel
"""

__version__ = "0.1.0"

from .body import Blob, Body, Form, Json, encode_body  # noqa: E402
from .bus import EventDefinition, EventFeed  # noqa: E402
from .channel import CommandChannel, MockChannel  # noqa: E402
from .client import StreamFetchClient, create_client  # noqa: E402
from .config import StreamFetchConfig  # noqa: E402
from .correlator import ChunkCorrelator  # noqa: E402
from .dispatcher import dispatch  # noqa: E402
from .errors import (  # noqa: E402
    EncodingError,
    SinkWriteError,
    StreamFetchError,
    SubscriptionSetupError,
    TransportError,
)
from .lifecycle import StreamLifecycle, StreamState  # noqa: E402
from .native import HTTPNativeChannel  # noqa: E402
from .protocol import (  # noqa: E402
    END_OF_BODY,
    ChunkEvent,
    RequestDescriptor,
    ResponseEnvelope,
)
from .sink import ResponseBodyStream  # noqa: E402

__all__ = [
    # Client
    "StreamFetchClient",
    "create_client",
    "StreamFetchConfig",
    # Request bodies
    "Body",
    "Form",
    "Blob",
    "Json",
    "encode_body",
    # Channels
    "CommandChannel",
    "HTTPNativeChannel",
    "MockChannel",
    "EventFeed",
    "EventDefinition",
    # Stream internals
    "dispatch",
    "ChunkCorrelator",
    "ResponseBodyStream",
    "StreamLifecycle",
    "StreamState",
    # Protocol
    "RequestDescriptor",
    "ResponseEnvelope",
    "ChunkEvent",
    "END_OF_BODY",
    # Errors
    "StreamFetchError",
    "EncodingError",
    "TransportError",
    "SinkWriteError",
    "SubscriptionSetupError",
]
