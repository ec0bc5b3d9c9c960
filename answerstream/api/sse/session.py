"""
Answer Stream Session
=====================

Drives one streamed answer: pulls items from a producer, emits them through
an ``SSEEmitter`` and exposes the frames as the HTTP response body.
"""

from typing import AsyncIterator, Optional, Any
import asyncio

from answerstream.config.logging import get_logger
from answerstream.core.producer import AnswerProducer, ProducerItem
from answerstream.models.events import CommentEvent, ErrorCode, StreamEvent
from answerstream.models.schemas import AnswerRequest

from .emitter import SSEEmitter
from .events import create_error_event, create_token_event

logger = get_logger(__name__)

GENERATION_FAILED_MESSAGE = "Something went wrong while generating the answer. Please try again."


class AnswerStreamSession:
    """Pump from producer to emitter for a single response."""

    def __init__(
        self,
        producer: AnswerProducer,
        request: AnswerRequest,
        emitter: SSEEmitter,
        heartbeat_interval_seconds: Optional[float] = None,
    ) -> None:
        self.producer = producer
        self.request = request
        self.emitter = emitter
        self.heartbeat_interval_seconds = heartbeat_interval_seconds
        self.tokens_sent = 0
        self.stopped_early = False
        self._pump_task: Optional[asyncio.Task[None]] = None
        self.logger: Any = logger.bind(
            component="answer_stream", response_id=emitter.response_id, user_id=request.user_id
        )

    @staticmethod
    def _to_event(item: ProducerItem) -> StreamEvent:
        if isinstance(item, str):
            return create_token_event(item)
        return item

    async def run(self) -> None:
        """Emit every producer item until the producer ends or the emitter refuses."""
        if self.heartbeat_interval_seconds:
            self.emitter.start_heartbeat(self.heartbeat_interval_seconds)

        items = self.producer.stream(self.request)
        try:
            async for item in items:
                event = self._to_event(item)
                if isinstance(event, CommentEvent) and event.is_flush:
                    written = await self.emitter.flush_tokens()
                else:
                    written = await self.emitter.emit(event)

                if not written:
                    self.stopped_early = True
                    self.logger.warning(
                        "Emitter refused event, stopping producer",
                        bytes_written=self.emitter.bytes_written,
                        truncated=self.emitter.truncated,
                    )
                    break

                if event.type == "token":
                    self.tokens_sent += 1
        except Exception as e:
            self.logger.error(
                "Answer producer failed", error_type=type(e).__name__, error=str(e)
            )
            await self.emitter.emit(
                create_error_event(GENERATION_FAILED_MESSAGE, ErrorCode.GENERATION_FAILED)
            )
        finally:
            aclose = getattr(items, "aclose", None)
            if aclose is not None:
                await aclose()

        await self.emitter.close()
        self.logger.info(
            "Answer stream finished",
            tokens_sent=self.tokens_sent,
            bytes_written=self.emitter.bytes_written,
            stopped_early=self.stopped_early,
        )

    async def frames(self) -> AsyncIterator[bytes]:
        """
        Response body iterator.

        Starts the pump on first iteration and cancels it if the client goes away.
        """
        self._pump_task = asyncio.create_task(self.run())
        try:
            async for frame in self.emitter.frames():
                yield frame
        finally:
            if not self._pump_task.done():
                self.logger.info("Client disconnected, cancelling answer stream")
                self._pump_task.cancel()
            try:
                # Collects the pump; cancellation of this task still propagates
                await asyncio.gather(self._pump_task, return_exceptions=True)
            finally:
                await self.emitter.stop_heartbeat()
