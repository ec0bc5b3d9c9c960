"""
Server-Sent Events (SSE) Infrastructure
======================================

Server side of the answer stream.

Components:
- Events: Frame formatting and event constructors
- Emitter: Per-response writer with size ceiling, keep-alive and backpressure
- Session: Pump from an answer producer into an emitter
"""

from .emitter import SSEEmitter
from .events import encode_sse_event, format_sse_comment, format_sse_event
from .session import AnswerStreamSession

__all__ = [
    "SSEEmitter",
    "AnswerStreamSession",
    "encode_sse_event",
    "format_sse_comment",
    "format_sse_event",
]
