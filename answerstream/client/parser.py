"""
Event Parser
============

Parses one SSE frame text into a typed stream event.

The parser never raises: malformed frames are logged and dropped.
"""

import json
from typing import List, Optional

from pydantic import ValidationError

from answerstream.config.logging import get_logger
from answerstream.models.events import (
    CommentEvent,
    KnownComment,
    StreamEvent,
    data_event_adapter,
)

logger = get_logger(__name__)

KNOWN_COMMENTS = {comment.value for comment in KnownComment}


def parse_frame(text: str) -> Optional[StreamEvent]:
    """
    Parse a frame into an event.

    Args:
        text: Frame text without the blank-line terminator

    Returns:
        The event, or None for unknown comments and malformed frames
    """
    data_lines: List[str] = []
    comment: Optional[str] = None

    for line in text.split("\n"):
        line = line.rstrip("\r")
        if not line:
            continue
        if line.startswith(":"):
            if comment is None:
                comment = line[1:].strip()
            continue
        if line.startswith("data:"):
            value = line[len("data:") :]
            if value.startswith(" "):
                value = value[1:]
            data_lines.append(value)
        # event:, id: and retry: fields carry nothing for this protocol

    if not data_lines:
        if comment in KNOWN_COMMENTS:
            return CommentEvent(text=comment)
        return None

    payload = "\n".join(data_lines)
    try:
        return data_event_adapter.validate_python(json.loads(payload))
    except json.JSONDecodeError as e:
        logger.warning("Dropping frame with malformed JSON", error=str(e), payload=payload[:200])
    except ValidationError as e:
        logger.warning(
            "Dropping frame that failed validation",
            error_count=e.error_count(),
            payload=payload[:200],
        )
    return None
