"""Pytest configuration and shared fixtures."""

import pytest

from stream_fetch import MockChannel, StreamFetchClient, StreamFetchConfig


@pytest.fixture
def channel() -> MockChannel:
    """In-memory command channel."""
    return MockChannel()


@pytest.fixture
def config() -> StreamFetchConfig:
    """Config with a short grace delay for error responses."""
    return StreamFetchConfig(error_close_delay=0.05)


@pytest.fixture
def client(channel: MockChannel, config: StreamFetchConfig) -> StreamFetchClient:
    """Client running over the mock channel."""
    return StreamFetchClient(channel, config)
