"""Protocol layer - wire models for the command channel.

- commands: the round trip (RequestDescriptor out, ResponseEnvelope back)
- events: chunk events pushed on the shared feed
"""

from .commands import NO_REQUEST_ID, RequestDescriptor, ResponseEnvelope
from .events import END_OF_BODY, ChunkEvent

__all__ = [
    "RequestDescriptor",
    "ResponseEnvelope",
    "NO_REQUEST_ID",
    "ChunkEvent",
    "END_OF_BODY",
]
