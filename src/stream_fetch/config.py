"""Configuration for stream fetch clients and channels."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from . import __version__

DEFAULT_COMMAND = "stream_fetch"
DEFAULT_EVENT = "stream-response"

# Reserved non-standard status for responses synthesized after a failed round trip
ERROR_STATUS = 599
ERROR_STATUS_TEXT = "Stream Fetch Error"


def default_headers() -> dict[str, str]:
    """Headers sent with every request unless the caller overrides them."""
    return {
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "en-US,en;q=0.9",
        "User-Agent": f"stream-fetch/{__version__}",
    }


@dataclass
class StreamFetchConfig:
    """Configuration for StreamFetchClient and HTTPNativeChannel.

    The error close delay is a grace period, not a protocol guarantee: error
    responses (status >= 400) get their body stream force-closed after it
    even if no end-of-body event arrived.
    """

    # Channel names
    command: str = DEFAULT_COMMAND
    event: str = DEFAULT_EVENT

    # Synthetic response for failed round trips
    error_status: int = ERROR_STATUS
    error_status_text: str = ERROR_STATUS_TEXT

    # Body stream behaviour
    error_close_delay: float = 0.1
    high_water_mark: int = 16

    # Native channel request timeout (connect/write/pool; reads are unbounded)
    timeout: float = 30.0

    default_headers: dict[str, str] = field(default_factory=default_headers)

    def __post_init__(self) -> None:
        if self.error_close_delay < 0:
            raise ValueError(f"error_close_delay must be >= 0, got {self.error_close_delay}")
        if self.high_water_mark < 1:
            raise ValueError(f"high_water_mark must be >= 1, got {self.high_water_mark}")

    @classmethod
    def from_env(cls) -> StreamFetchConfig:
        """Build a config, overriding defaults from STREAM_FETCH_* variables."""
        config = cls()
        config.command = os.environ.get("STREAM_FETCH_COMMAND", config.command)
        config.event = os.environ.get("STREAM_FETCH_EVENT", config.event)
        if "STREAM_FETCH_ERROR_STATUS" in os.environ:
            config.error_status = int(os.environ["STREAM_FETCH_ERROR_STATUS"])
        if "STREAM_FETCH_ERROR_CLOSE_DELAY" in os.environ:
            config.error_close_delay = float(os.environ["STREAM_FETCH_ERROR_CLOSE_DELAY"])
        if "STREAM_FETCH_HIGH_WATER_MARK" in os.environ:
            config.high_water_mark = int(os.environ["STREAM_FETCH_HIGH_WATER_MARK"])
        if "STREAM_FETCH_TIMEOUT" in os.environ:
            config.timeout = float(os.environ["STREAM_FETCH_TIMEOUT"])
        config.__post_init__()
        return config
