"""Chunk event definitions for the protocol layer.

Chunk events are pushed by the native side on a shared feed, one or more per
request, tagged with the request identifier from the round trip. They carry
body bytes, an end-of-body marker, or both.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, field_serializer, field_validator

from .commands import byte_list_to_bytes

# Status marker value that ends a response body
END_OF_BODY = 0


class ChunkEvent(BaseModel):
    """A piece of a response body.

    Example (data):
        {"request_id": 7, "chunk": [72, 105]}

    Example (end of body):
        {"request_id": 7, "status": 0}

    ``chunk`` travels as a list of byte values; raw bytes are accepted too.
    """

    request_id: int
    chunk: bytes | None = None
    status: int | None = None

    @field_validator("chunk", mode="before")
    @classmethod
    def _coerce_chunk(cls, value: Any) -> Any:
        return byte_list_to_bytes(value)

    @field_serializer("chunk")
    def _serialize_chunk(self, chunk: bytes | None) -> list[int] | None:
        return list(chunk) if chunk is not None else None

    def has_payload(self) -> bool:
        """Check if the event carries body bytes."""
        return bool(self.chunk)

    def is_end_of_body(self) -> bool:
        """Check if the event carries the end-of-body marker."""
        return self.status == END_OF_BODY

    @classmethod
    def data(cls, request_id: int, chunk: bytes) -> ChunkEvent:
        """Create a data event."""
        return cls(request_id=request_id, chunk=chunk)

    @classmethod
    def end(cls, request_id: int) -> ChunkEvent:
        """Create an end-of-body event."""
        return cls(request_id=request_id, status=END_OF_BODY)
