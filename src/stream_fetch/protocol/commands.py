"""Round-trip definitions for the protocol layer.

The round trip is the single request/response exchange over the command
channel. It carries the request descriptor out and brings back response
metadata plus the request identifier that tags the body's chunk events.
The body itself never travels in the round trip response.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# Request identifier of synthesized responses that never had a round trip
NO_REQUEST_ID = -1


def byte_list_to_bytes(value: Any) -> Any:
    """Convert a wire list of byte values to bytes; other values pass through."""
    if isinstance(value, list):
        try:
            return bytes(value)
        except TypeError as e:
            raise ValueError(f"expected a list of byte values: {e}") from e
    return value


class RequestDescriptor(BaseModel):
    """An outbound request, immutable once built.

    Wire format (the round trip command arguments):
        {
            "method": "POST",
            "url": "https://example.com/v1/chat",
            "headers": {"content-type": "application/json;charset=UTF-8"},
            "body": [123, 125]
        }

    ``body`` travels as a list of byte values and is ``bytes`` in Python.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("body", mode="before")
    @classmethod
    def _coerce_body(cls, value: Any) -> Any:
        return byte_list_to_bytes(value)

    @field_serializer("body")
    def _serialize_body(self, body: bytes) -> list[int]:
        return list(body)

    def to_args(self) -> dict[str, Any]:
        """Command arguments for the round trip."""
        return self.model_dump()


class ResponseEnvelope(BaseModel):
    """Response metadata produced exactly once per request.

    Example:
        {
            "request_id": 7,
            "status": 200,
            "status_text": "OK",
            "headers": {"content-type": "text/event-stream"}
        }

    ``request_id`` is assigned by the native side when the round trip
    completes and is the only key used to route chunk events.
    """

    request_id: int
    status: int
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        """Check if the status is in the error range (>= 400)."""
        return self.status >= 400

    @classmethod
    def synthetic(cls, status: int, status_text: str) -> ResponseEnvelope:
        """Terminal envelope for a request whose round trip failed."""
        return cls(request_id=NO_REQUEST_ID, status=status, status_text=status_text)
