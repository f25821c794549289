"""Request body encoding.

Turns a caller-supplied payload into the canonical byte sequence sent over
the command channel, setting a content type on the request headers when the
caller has not set one.

Supported payloads:
- None: empty body
- str: UTF-8 text, content type left unspecified
- bytes, bytearray, memoryview: sent as is
- Form: key-value pairs, form-url-encoded
- Blob: bytes with a declared media type
- Json: any JSON-serializable value or pydantic model

Anything else is rejected with TypeError.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from .errors import EncodingError

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded;charset=UTF-8"
JSON_CONTENT_TYPE = "application/json;charset=UTF-8"


class Form:
    """Ordered key-value pairs. Repeated keys are kept in insertion order."""

    def __init__(
        self, fields: Mapping[str, str] | Iterable[tuple[str, str]] | None = None
    ) -> None:
        self.items: list[tuple[str, str]] = []
        if isinstance(fields, Mapping):
            fields = fields.items()
        for key, value in fields or ():
            self.append(key, value)

    def append(self, key: str, value: str) -> None:
        """Add a pair without replacing existing values for the key."""
        self.items.append((key, str(value)))

    def encode(self) -> bytes:
        return urlencode(self.items).encode("utf-8")

    def __repr__(self) -> str:
        return f"Form({self.items!r})"


@dataclass(frozen=True)
class Blob:
    """Binary data with an optional declared media type."""

    data: bytes
    media_type: str = ""


@dataclass(frozen=True)
class Json:
    """A structured value sent as JSON."""

    value: Any

    def encode(self) -> bytes:
        """Serialize to compact UTF-8 JSON.

        Raises:
            EncodingError: If the value is not JSON-serializable
        """
        try:
            if isinstance(self.value, BaseModel):
                return self.value.model_dump_json().encode("utf-8")
            text = json.dumps(
                self.value, separators=(",", ":"), ensure_ascii=False, allow_nan=False
            )
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Cannot encode {type(self.value).__name__} as JSON: {e}") from e
        return text.encode("utf-8")


Body = Union[str, bytes, bytearray, memoryview, Form, Blob, Json, None]


def _set_default_content_type(headers: httpx.Headers, content_type: str) -> None:
    # Lookup is case-insensitive
    if "content-type" not in headers:
        headers["Content-Type"] = content_type


def encode_body(body: Body, headers: httpx.Headers) -> bytes:
    """Encode a request body, updating headers in place.

    A content type already present in headers is never changed. A Json body
    that cannot be serialized is logged and sent as an empty body.

    Args:
        body: The payload (see module docstring for supported types)
        headers: Request headers, mutated in place

    Returns:
        The canonical body bytes (possibly empty)

    Raises:
        TypeError: If the payload type is not supported
    """
    if body is None:
        return b""

    if isinstance(body, str):
        return body.encode("utf-8")

    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)

    if isinstance(body, Form):
        _set_default_content_type(headers, FORM_CONTENT_TYPE)
        return body.encode()

    if isinstance(body, Blob):
        if body.media_type:
            _set_default_content_type(headers, body.media_type)
        return bytes(body.data)

    if isinstance(body, Json):
        try:
            data = body.encode()
        except EncodingError as e:
            logger.error(f"Sending request without body: {e}")
            return b""
        _set_default_content_type(headers, JSON_CONTENT_TYPE)
        return data

    raise TypeError(
        f"Unsupported body type {type(body).__name__}; "
        "use str, bytes, Form, Blob or Json"
    )
