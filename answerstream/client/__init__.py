"""
Answer Stream Client
====================

Client side of the answer stream: reads raw bytes, rebuilds frames and
events, accumulates the answer and paces its display.

Components:
- Ingestion: Boundary-safe byte to frame splitting
- Parser: Frame to typed event
- Accumulator: Per-answer protocol state machine with deferred completion
- Cancellation: Per-answer cancellation tokens
- Pacing: Typewriter animation queues
- Reconnect: Backoff and retry for transport failures
- Transport: aiohttp streaming POST
- StreamingAnswerClient: Wires the above together per answer
"""

from .accumulator import StreamAccumulator, StreamPhase, StreamState
from .callbacks import StreamCallbacks
from .cancellation import CancellationRegistry, CancellationToken
from .errors import (
    ReconnectExhaustedError,
    StreamCapacityError,
    StreamConnectionLostError,
    StreamError,
    StreamRequestError,
    StreamServerError,
    StreamTimeoutError,
    StreamTransportError,
)
from .ingestion import ByteIngestionLayer
from .pacing import PacingEngine
from .parser import parse_frame
from .reconnect import ReconnectionController
from .stream_client import StreamingAnswerClient
from .transport import AiohttpStreamTransport, AnswerStreamTransport

__all__ = [
    "AiohttpStreamTransport",
    "AnswerStreamTransport",
    "ByteIngestionLayer",
    "CancellationRegistry",
    "CancellationToken",
    "PacingEngine",
    "ReconnectExhaustedError",
    "ReconnectionController",
    "StreamAccumulator",
    "StreamCallbacks",
    "StreamCapacityError",
    "StreamConnectionLostError",
    "StreamError",
    "StreamPhase",
    "StreamRequestError",
    "StreamServerError",
    "StreamState",
    "StreamTimeoutError",
    "StreamTransportError",
    "StreamingAnswerClient",
    "parse_frame",
]
