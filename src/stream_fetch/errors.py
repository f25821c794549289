"""Error taxonomy for stream fetch.

None of these reach the caller of ``StreamFetchClient.fetch()``: each one is
recovered where it is raised and turned into a terminal, well-formed
response.
"""


class StreamFetchError(Exception):
    """Base class for all stream fetch errors."""


class EncodingError(StreamFetchError):
    """Request body could not be serialized.

    Recovered by the body encoder: an empty body is sent instead.
    """


class TransportError(StreamFetchError):
    """The round trip over the command channel failed.

    Recovered by the client: the caller receives a synthetic error response.
    """


class SinkWriteError(StreamFetchError):
    """A chunk was written to a closed response body stream.

    Recovered by the correlator: the stream is closed.
    """


class SubscriptionSetupError(StreamFetchError):
    """Subscribing to the chunk event feed failed.

    Recovered by the client: the stream is closed so readers never hang.
    """
