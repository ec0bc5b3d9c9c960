"""
SSE Emitter
===========

Writes stream events for one HTTP response.

The emitter serializes events into SSE frames, tracks the bytes written for
the response and refuses to exceed the configured size ceiling, sends
keep-alive comments on a timer, and hands every frame to the transport as its
own chunk so it is flushed immediately.

Frames pass through a bounded queue that the response body iterates. When the
client reads slower than the producer writes, ``emit`` waits on the queue,
which is the backpressure path back into the producer.
"""

from typing import AsyncIterator, Optional, Any
import asyncio
import uuid

from answerstream.config.logging import get_logger
from answerstream.models.events import CommentEvent, KnownComment, StreamEvent

from .events import create_comment_event, create_truncation_error_event, encode_sse_event

logger = get_logger(__name__)


class SSEEmitter:
    """
    Per-response SSE writer.

    Handles:
    - Frame serialization and the cumulative byte budget
    - Keep-alive heartbeat task
    - Backpressure through a bounded frame queue
    - Orderly end of the response
    """

    def __init__(
        self,
        max_bytes: int,
        buffer_size: int = 100,
        close_grace_seconds: float = 0.0,
        response_id: Optional[str] = None,
    ) -> None:
        """Initialize emitter for a single response."""
        self.response_id = response_id or str(uuid.uuid4())
        self.max_bytes = max_bytes
        self.close_grace_seconds = close_grace_seconds
        self.bytes_written = 0
        self.events_sent = 0
        self.truncated = False
        self.closed = False

        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize=max(1, buffer_size))
        self._write_lock = asyncio.Lock()
        self.heartbeat_task: Optional[asyncio.Task[None]] = None
        self.logger: Any = logger.bind(component="sse_emitter", response_id=self.response_id)

    async def emit(self, event: StreamEvent) -> bool:
        """
        Write one event to the response.

        Args:
            event: Event to serialize

        Returns:
            True if the frame was written, False once the response is closed or
            has hit its size ceiling. The caller must stop emitting on False.
        """
        frame = encode_sse_event(event)

        async with self._write_lock:
            if self.closed or self.truncated:
                return False

            if self.bytes_written + len(frame) > self.max_bytes:
                await self._truncate(attempted_bytes=len(frame))
                return False

            await self._write(frame)
            if not isinstance(event, CommentEvent):
                self.events_sent += 1
            return True

    async def flush_tokens(self) -> bool:
        """Write the flush-tokens comment that closes a run of token events."""
        return await self.emit(create_comment_event(KnownComment.FLUSH_TOKENS))

    async def _write(self, frame: bytes) -> None:
        self.bytes_written += len(frame)
        await self._queue.put(frame)

    async def _truncate(self, attempted_bytes: int) -> None:
        """Write the one final error frame for an oversized response."""
        self.truncated = True
        error_frame = encode_sse_event(
            create_truncation_error_event(self.bytes_written, self.max_bytes)
        )
        self.logger.error(
            "Response size ceiling reached, truncating stream",
            bytes_written=self.bytes_written,
            attempted_bytes=attempted_bytes,
            max_bytes=self.max_bytes,
        )
        # The error frame itself may overshoot the ceiling; the ceiling sits below the hard cap
        await self._write(error_frame)

    def start_heartbeat(self, interval_seconds: float) -> None:
        """Start sending keep-alive comments every ``interval_seconds``."""
        if self.heartbeat_task and not self.heartbeat_task.done():
            return
        self.heartbeat_task = asyncio.create_task(self._heartbeat_loop(interval_seconds))
        self.logger.debug("Heartbeat started", interval_seconds=interval_seconds)

    async def stop_heartbeat(self) -> None:
        """Stop the keep-alive task."""
        task = self.heartbeat_task
        self.heartbeat_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _heartbeat_loop(self, interval_seconds: float) -> None:
        """Background task that keeps idle proxies from closing the connection."""
        keepalive = create_comment_event(KnownComment.KEEPALIVE)
        while True:
            await asyncio.sleep(interval_seconds)
            if not await self.emit(keepalive):
                break

    async def close(self) -> None:
        """Stop the heartbeat, write the end-of-stream comment and end the response."""
        await self.stop_heartbeat()

        if self.closed:
            return

        if not self.truncated:
            await self.emit(create_comment_event(KnownComment.STREAM_END))

        if self.close_grace_seconds > 0:
            await asyncio.sleep(self.close_grace_seconds)

        async with self._write_lock:
            self.closed = True
            await self._queue.put(None)

        self.logger.info(
            "Response stream closed",
            bytes_written=self.bytes_written,
            events_sent=self.events_sent,
            truncated=self.truncated,
        )

    async def frames(self) -> AsyncIterator[bytes]:
        """
        Iterate frames for the HTTP response body.

        Yields:
            One encoded SSE frame per item; None on the queue ends the stream
        """
        while True:
            frame = await self._queue.get()
            if frame is None:
                break
            yield frame
