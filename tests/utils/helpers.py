"""
Test Helpers
============

Helper functions for common testing operations.
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List

from answerstream.api.sse.emitter import SSEEmitter


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 5.0,
    interval: float = 0.01,
    error_message: str = "Condition not met within timeout",
) -> None:
    """Wait for a condition to become true."""
    start_time = time.monotonic()

    while time.monotonic() - start_time < timeout:
        if condition():
            return
        await asyncio.sleep(interval)

    raise TimeoutError(error_message)


async def collect_frames(emitter: SSEEmitter) -> List[bytes]:
    """Drain an emitter's frame queue until the response ends."""
    return [frame async for frame in emitter.frames()]


def split_sse_body(body: str) -> List[str]:
    """Split an SSE response body into frame texts."""
    return [frame for frame in body.split("\n\n") if frame]


def data_payloads(body: str) -> List[Dict[str, Any]]:
    """JSON payloads of every data frame in an SSE body."""
    payloads = []
    for frame in split_sse_body(body):
        if frame.startswith("data: "):
            payloads.append(json.loads(frame[len("data: ") :]))
    return payloads


def comment_texts(body: str) -> List[str]:
    """Text of every comment frame in an SSE body."""
    return [frame[2:] for frame in split_sse_body(body) if frame.startswith(": ")]
