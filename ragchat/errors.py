"""Exception hierarchy for the chat client.

Decode-level problems (FrameParseError) are recovered where they occur.
Everything else propagates to the caller.
"""


class RagChatError(Exception):
    """Base class for all client errors."""

    pass


class TransportError(RagChatError):
    """Raised when an HTTP request fails or returns a non-2xx status.

    Attributes:
        status_code: HTTP status code, or None for network failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FrameParseError(RagChatError):
    """Raised when a single stream payload cannot be parsed."""

    pass


class ProtocolError(RagChatError):
    """Raised when the server sends an explicit error record mid-stream."""

    pass


class AccumulatorClosedError(RagChatError):
    """Raised when an event is applied to an answer that already finished."""

    pass


class SessionCreationError(RagChatError):
    """Raised when the backend fails to create a session."""

    pass


class DocumentValidationError(RagChatError):
    """Raised when a file is rejected before upload."""

    pass


class CacheInconsistencyError(RagChatError):
    """Raised when an optimistic document removal is rejected by the backend."""

    pass


class StreamBusyError(RagChatError):
    """Raised when a message is sent while another answer is still streaming."""

    pass
