"""
SSE Events
==========

Server-Sent Events formatting functions and event constructors.

Each stream event becomes exactly one frame terminated by a blank line:

    data: {"type":"token","content":"..."}\\n\\n
    : keepalive\\n\\n
"""

from typing import Optional, Dict, Any, Sequence
import json

from answerstream.models.events import (
    CommentEvent,
    CompleteEvent,
    ErrorCode,
    ErrorEvent,
    KnownComment,
    Source,
    StreamEvent,
    TokenEvent,
)


FRAME_TERMINATOR = "\n\n"


def format_sse_data(data: Dict[str, Any]) -> str:
    """
    Format a JSON payload as an SSE data frame.

    Args:
        data: Event data dictionary

    Returns:
        Formatted SSE frame string
    """
    data_json = json.dumps(data, default=str, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data_json}{FRAME_TERMINATOR}"


def format_sse_comment(text: str) -> str:
    """Format an SSE comment frame."""
    # A newline inside a comment would start a second field
    single_line = " ".join(text.splitlines())
    return f": {single_line}{FRAME_TERMINATOR}"


def format_sse_event(event: StreamEvent) -> str:
    """Format any stream event for the SSE protocol."""
    if isinstance(event, CommentEvent):
        return format_sse_comment(event.text)
    return format_sse_data(event.model_dump(mode="json", exclude_none=True))


def encode_sse_event(event: StreamEvent) -> bytes:
    """Format and UTF-8 encode an event; the byte length is what counts toward limits."""
    return format_sse_event(event).encode("utf-8")


def create_token_event(content: str) -> TokenEvent:
    """Create answer token event."""
    return TokenEvent(content=content)


def create_complete_event(
    sources: Sequence[Source],
    metadata: Optional[Dict[str, Any]] = None,
    summary: Optional[Dict[str, Any]] = None,
    processing_tier: Optional[str] = None,
) -> CompleteEvent:
    """Create completion event."""
    return CompleteEvent(
        sources=list(sources),
        metadata=metadata or {},
        summary=summary,
        processing_tier=processing_tier,
    )


def create_error_event(message: str, code: Optional[ErrorCode] = None) -> ErrorEvent:
    """Create error event."""
    return ErrorEvent(message=message, code=code.value if code else None)


def create_truncation_error_event(bytes_written: int, max_bytes: int) -> ErrorEvent:
    """Create the final error event written when a response hits its size ceiling."""
    return create_error_event(
        message=(
            f"Response exceeded the {max_bytes / 1024 / 1024:.1f} MB limit after "
            f"{bytes_written} bytes; please ask a more specific question"
        ),
        code=ErrorCode.RESPONSE_TOO_LARGE,
    )


def create_comment_event(comment: KnownComment) -> CommentEvent:
    """Create comment event for a known comment."""
    return CommentEvent(text=comment.value)
