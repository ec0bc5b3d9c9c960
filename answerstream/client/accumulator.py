"""
Stream Accumulator
==================

Protocol state machine for one answer.

Tokens and side-channel events are forwarded as soon as they arrive. A
``complete`` event is only stored: the answer is finalized when the transport
closes or the stream goes idle, because tokens and sources may still follow
the completion record.

Phases::

    STREAMING -> AWAITING_TRAILING -> FINALIZED
        \\______________________\\____> FAILED | CANCELLED
"""

from dataclasses import dataclass, field
from enum import Enum
import time
from typing import Any, Callable, Dict, List, Optional, Set

from answerstream.config.logging import get_logger
from answerstream.config.settings import get_settings
from answerstream.models.events import (
    CommentEvent,
    CompleteEvent,
    ErrorCode,
    ErrorEvent,
    KnownComment,
    SearchCompleteEvent,
    Source,
    SourcesReadyEvent,
    StageProgressEvent,
    StreamEvent,
    TierSelectedEvent,
    TokenEvent,
    merge_sources,
)
from answerstream.client.callbacks import StreamCallbacks, invoke
from answerstream.client.errors import (
    StreamCapacityError,
    StreamConnectionLostError,
    StreamError,
    StreamServerError,
    StreamTimeoutError,
    StreamTransportError,
)

logger = get_logger(__name__)


class StreamPhase(str, Enum):
    STREAMING = "streaming"
    AWAITING_TRAILING = "awaiting_trailing"
    FINALIZED = "finalized"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_PHASES = frozenset({StreamPhase.FINALIZED, StreamPhase.FAILED, StreamPhase.CANCELLED})


@dataclass
class StreamState:
    """Everything accumulated for one answer."""

    answer_id: str
    accumulated_text: str = ""
    accumulated_sources: List[Source] = field(default_factory=list)
    pending_completion: Optional[CompleteEvent] = None
    stream_closed: bool = False
    last_event_at: float = 0.0
    phase: StreamPhase = StreamPhase.STREAMING
    token_count: int = 0
    tier: Optional[int] = None
    seen_sequences: Set[int] = field(default_factory=set)
    metadata: Dict[str, Any] = field(default_factory=dict)
    synthesized: bool = False
    error: Optional[StreamError] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


class StreamAccumulator:
    """Single-writer owner of one answer's :class:`StreamState`."""

    def __init__(
        self,
        answer_id: str,
        callbacks: Optional[StreamCallbacks] = None,
        min_partial_answer_chars: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.callbacks = callbacks or StreamCallbacks()
        self.min_partial_answer_chars = (
            min_partial_answer_chars
            if min_partial_answer_chars is not None
            else get_settings().stream_min_partial_answer_chars
        )
        self._clock = clock
        self.state = StreamState(answer_id=answer_id, last_event_at=clock())
        self.logger: Any = logger.bind(component="stream_accumulator", answer_id=answer_id)

    @property
    def answer_id(self) -> str:
        return self.state.answer_id

    @property
    def phase(self) -> StreamPhase:
        return self.state.phase

    async def handle(self, event: StreamEvent) -> None:
        """Apply one event. Events after a terminal phase are ignored."""
        state = self.state
        if state.is_terminal:
            self.logger.debug("Ignoring event after stream ended", event_type=event.type)
            return

        state.last_event_at = self._clock()

        if isinstance(event, TokenEvent):
            state.accumulated_text += event.content
            state.token_count += 1
            await self._fire(self.callbacks.on_token, event.content)

        elif isinstance(event, SourcesReadyEvent):
            state.accumulated_sources = merge_sources(state.accumulated_sources, event.sources)
            await self._fire(self.callbacks.on_sources_ready, list(state.accumulated_sources))

        elif isinstance(event, StageProgressEvent):
            if event.sequence > 0:
                if event.sequence in state.seen_sequences:
                    self.logger.debug("Dropping duplicate stage progress", sequence=event.sequence)
                    return
                state.seen_sequences.add(event.sequence)
            await self._fire(self.callbacks.on_stage_progress, event)

        elif isinstance(event, TierSelectedEvent):
            state.tier = event.tier
            await self._fire(self.callbacks.on_tier_selected, event)

        elif isinstance(event, SearchCompleteEvent):
            await self._fire(self.callbacks.on_search_complete, event)

        elif isinstance(event, CompleteEvent):
            await self._store_completion(event)

        elif isinstance(event, ErrorEvent):
            error_class = (
                StreamCapacityError
                if event.code == ErrorCode.RESPONSE_TOO_LARGE.value
                else StreamServerError
            )
            await self._fail(error_class(event.message, code=event.code))

        elif isinstance(event, CommentEvent):
            if event.text == KnownComment.FLUSH_TOKENS.value:
                await self._fire(self.callbacks.on_flush)

    async def on_transport_closed(self) -> None:
        """The connection ended normally."""
        state = self.state
        if state.is_terminal:
            return
        state.stream_closed = True

        if state.pending_completion is not None:
            await self._finalize(state.pending_completion)
        elif len(state.accumulated_text) >= self.min_partial_answer_chars:
            await self._synthesize(processing_time="unknown")
        else:
            await self._fail(
                StreamConnectionLostError("Connection closed before the answer was complete")
            )

    async def on_idle_timeout(self) -> None:
        """No event of any kind arrived within the idle window."""
        state = self.state
        if state.is_terminal:
            return
        self.logger.info(
            "Stream idle",
            phase=state.phase.value,
            text_length=len(state.accumulated_text),
        )

        if state.pending_completion is not None:
            await self._finalize(state.pending_completion)
        elif state.accumulated_text:
            await self._synthesize(processing_time="timeout")
        else:
            await self._fail(StreamTimeoutError("Timed out waiting for the answer"))

    async def on_transport_failed(self, error: BaseException) -> None:
        """The connection failed and will not be retried."""
        state = self.state
        if state.is_terminal:
            return
        state.stream_closed = True

        if state.pending_completion is not None:
            await self._finalize(state.pending_completion)
        elif state.accumulated_text:
            self.logger.warning("Transport failed mid-answer, keeping partial text", error=str(error))
            await self._synthesize(processing_time="unknown")
        elif isinstance(error, StreamError):
            await self._fail(error)
        else:
            failure = StreamTransportError(f"Connection failed: {error}")
            failure.__cause__ = error
            await self._fail(failure)

    def cancel(self) -> bool:
        """Stop the answer without firing any further callback."""
        if self.state.is_terminal:
            return False
        self.state.phase = StreamPhase.CANCELLED
        self.logger.info("Answer cancelled", text_length=len(self.state.accumulated_text))
        return True

    async def _store_completion(self, event: CompleteEvent) -> None:
        state = self.state
        if state.pending_completion is not None:
            self.logger.debug("Ignoring duplicate completion")
            return

        state.pending_completion = event
        state.phase = StreamPhase.AWAITING_TRAILING
        if event.sources:
            before = len(state.accumulated_sources)
            state.accumulated_sources = merge_sources(state.accumulated_sources, event.sources)
            if len(state.accumulated_sources) != before:
                await self._fire(self.callbacks.on_sources_ready, list(state.accumulated_sources))

    async def _finalize(self, completion: CompleteEvent) -> None:
        state = self.state
        metadata = dict(completion.metadata)
        for key in ("summary", "processing_tier", "thinking_summary"):
            value = getattr(completion, key)
            if value is not None:
                metadata.setdefault(key, value)

        state.metadata = metadata
        state.phase = StreamPhase.FINALIZED
        self.logger.info(
            "Answer finalized",
            text_length=len(state.accumulated_text),
            tokens=state.token_count,
            sources=len(state.accumulated_sources),
            synthesized=state.synthesized,
        )
        await self._fire(
            self.callbacks.on_complete,
            state.accumulated_text,
            list(state.accumulated_sources),
            metadata,
        )

    async def _synthesize(self, processing_time: str) -> None:
        self.state.synthesized = True
        await self._finalize(
            CompleteEvent(
                sources=list(self.state.accumulated_sources),
                metadata={
                    "synthesized": True,
                    "processing_time": processing_time,
                    "model_used": "unknown",
                },
            )
        )

    async def _fail(self, error: StreamError) -> None:
        state = self.state
        error.partial_text = state.accumulated_text
        state.error = error
        state.phase = StreamPhase.FAILED
        self.logger.error(
            "Answer failed",
            error_type=type(error).__name__,
            error=error.message,
            text_length=len(state.accumulated_text),
        )
        await self._fire(self.callbacks.on_error, error)

    async def _fire(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        try:
            await invoke(callback, *args)
        except Exception as e:
            self.logger.error("Stream callback failed", error=str(e))
