"""
Client Errors
=============

Exception taxonomy for the streaming answer client.

Every error carries the answer text accumulated before it happened, so a
caller can still show what arrived.
"""

from typing import Optional


class StreamError(Exception):
    """Base exception for answer stream failures."""

    def __init__(self, message: str, partial_text: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.partial_text = partial_text


class StreamTransportError(StreamError):
    """Connection-level failure. Retried by the reconnection controller."""

    pass


class ReconnectExhaustedError(StreamError):
    """Every reconnection attempt failed."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[BaseException] = None,
        partial_text: str = "",
    ) -> None:
        super().__init__(message, partial_text)
        self.attempts = attempts
        self.last_error = last_error


class StreamRequestError(StreamError):
    """The server rejected the request (HTTP 4xx). Never retried."""

    def __init__(self, message: str, status: int, partial_text: str = "") -> None:
        super().__init__(message, partial_text)
        self.status = status


class StreamServerError(StreamError):
    """The server sent an ``error`` event."""

    def __init__(self, message: str, code: Optional[str] = None, partial_text: str = "") -> None:
        super().__init__(message, partial_text)
        self.code = code


class StreamCapacityError(StreamServerError):
    """The server truncated the response at its size ceiling."""

    pass


class StreamTimeoutError(StreamError):
    """The stream went idle before any usable text arrived."""

    pass


class StreamConnectionLostError(StreamError):
    """The connection closed before enough of the answer arrived."""

    pass
