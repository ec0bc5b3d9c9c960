"""
Unit Tests for SSE Emitter
==========================

Tests for the per-response writer: size ceiling, keep-alive, flush and close.
"""

import asyncio
import json

import pytest

from answerstream.api.sse.emitter import SSEEmitter
from answerstream.api.sse.events import create_token_event, encode_sse_event
from answerstream.models.events import ErrorCode

from tests.utils.helpers import collect_frames


@pytest.mark.unit
@pytest.mark.sse
class TestSSEEmitter:
    """Test SSE emitter behavior."""

    @pytest.mark.asyncio
    async def test_emit_writes_frame_and_counts_bytes(self):
        """Test a written frame is queued and counted."""
        emitter = SSEEmitter(max_bytes=1024)
        event = create_token_event("Hello")

        assert await emitter.emit(event) is True
        await emitter.close()

        frames = await collect_frames(emitter)
        assert frames[0] == encode_sse_event(event)
        assert frames[-1] == b": stream-end\n\n"
        assert emitter.events_sent == 1
        assert emitter.bytes_written == sum(len(frame) for frame in frames)

    @pytest.mark.asyncio
    async def test_size_ceiling_writes_exactly_one_error(self):
        """Test exceeding the ceiling yields one error frame and no further writes."""
        token = create_token_event("x" * 20)
        frame_size = len(encode_sse_event(token))
        emitter = SSEEmitter(max_bytes=frame_size * 3 + 5)

        results = [await emitter.emit(token) for _ in range(6)]
        await emitter.close()
        frames = await collect_frames(emitter)

        assert results == [True, True, True, False, False, False]
        assert emitter.truncated is True

        error_frames = [f for f in frames if b'"type":"error"' in f]
        assert len(error_frames) == 1
        payload = json.loads(error_frames[0][len(b"data: ") :])
        assert payload["code"] == ErrorCode.RESPONSE_TOO_LARGE.value

        # The error is the last frame; no stream-end comment after truncation
        assert frames[-1] == error_frames[0]
        assert len(frames) == 4

    @pytest.mark.asyncio
    async def test_emit_after_close_is_refused(self):
        """Test a closed emitter refuses writes without raising."""
        emitter = SSEEmitter(max_bytes=1024)
        await emitter.close()

        assert await emitter.emit(create_token_event("late")) is False

    @pytest.mark.asyncio
    async def test_flush_tokens_comment(self):
        """Test flush writes the flush-tokens comment."""
        emitter = SSEEmitter(max_bytes=1024)

        assert await emitter.flush_tokens() is True
        await emitter.close()

        frames = await collect_frames(emitter)
        assert frames[0] == b": flush-tokens\n\n"
        assert emitter.events_sent == 0

    @pytest.mark.asyncio
    async def test_heartbeat_sends_keepalive(self):
        """Test the heartbeat task writes keepalive comments on its interval."""
        emitter = SSEEmitter(max_bytes=1024)
        emitter.start_heartbeat(0.01)

        await asyncio.sleep(0.05)
        await emitter.close()

        frames = await collect_frames(emitter)
        assert frames.count(b": keepalive\n\n") >= 2
        assert emitter.heartbeat_task is None

    @pytest.mark.asyncio
    async def test_stop_heartbeat_is_idempotent(self):
        """Test stopping a heartbeat that never started is harmless."""
        emitter = SSEEmitter(max_bytes=1024)
        await emitter.stop_heartbeat()
        emitter.start_heartbeat(10)
        await emitter.stop_heartbeat()
        await emitter.stop_heartbeat()

        assert emitter.heartbeat_task is None

    @pytest.mark.asyncio
    async def test_bounded_queue_applies_backpressure(self):
        """Test emit waits while the consumer has not drained the buffer."""
        emitter = SSEEmitter(max_bytes=1024, buffer_size=2)
        await emitter.emit(create_token_event("a"))
        await emitter.emit(create_token_event("b"))

        blocked = asyncio.create_task(emitter.emit(create_token_event("c")))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        frames = emitter.frames()
        assert await frames.__anext__() == encode_sse_event(create_token_event("a"))
        assert await asyncio.wait_for(blocked, timeout=1) is True
