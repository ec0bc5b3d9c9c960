"""
Streaming Answer Client
=======================

Orchestrates one or more concurrent answer streams.

Per answer there is one reader task (transport, byte ingestion, parsing) and
one owner task that applies events to the answer's accumulator. The two talk
only through an ``asyncio.Queue`` inbox; the owner races each read against
the idle timeout. Cancelling an answer tears down its reader and animation
without affecting any other answer.
"""

import asyncio
from dataclasses import replace
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel

from answerstream.config.logging import get_logger
from answerstream.config.settings import Settings, get_settings
from answerstream.models.events import Source
from answerstream.models.schemas import AnswerRequest
from answerstream.client.accumulator import StreamAccumulator, StreamState
from answerstream.client.callbacks import StreamCallbacks, invoke
from answerstream.client.cancellation import CancellationRegistry, CancellationToken
from answerstream.client.ingestion import ByteIngestionLayer
from answerstream.client.pacing import PacingEngine
from answerstream.client.parser import parse_frame
from answerstream.client.reconnect import ReconnectionController
from answerstream.client.transport import AiohttpStreamTransport, AnswerStreamTransport

logger = get_logger(__name__)


class InboxKind(str, Enum):
    EVENT = "event"
    CLOSED = "closed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    # A frame arrived but carried no event; only restarts the idle window
    ACTIVITY = "activity"


class InboxMessage(NamedTuple):
    kind: InboxKind
    payload: Any = None


class StreamingAnswerClient:
    """Client for the answer stream endpoint."""

    def __init__(
        self,
        transport: Optional[AnswerStreamTransport] = None,
        settings: Optional[Settings] = None,
        pacing: Optional[PacingEngine] = None,
        registry: Optional[CancellationRegistry] = None,
        reconnect: Optional[ReconnectionController] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_transport = transport is None
        self.transport: AnswerStreamTransport = transport or AiohttpStreamTransport(
            settings=self.settings
        )
        self.pacing = pacing
        self.registry = registry or CancellationRegistry()
        self.reconnect = reconnect or ReconnectionController(
            max_attempts=self.settings.stream_reconnect_max_attempts,
            base_delay=self.settings.stream_reconnect_base_delay_seconds,
            max_delay=self.settings.stream_reconnect_max_delay_seconds,
        )
        self.idle_timeout = self.settings.stream_idle_timeout_seconds
        self.logger: Any = logger.bind(component="streaming_answer_client")
        self._tasks: Dict[str, "asyncio.Task[StreamState]"] = {}

    async def stream_answer(
        self,
        answer_id: str,
        request: Union[AnswerRequest, Dict[str, Any]],
        callbacks: Optional[StreamCallbacks] = None,
    ) -> StreamState:
        """
        Stream one answer to completion.

        Args:
            answer_id: Caller-chosen id; re-using an active id supersedes it
            request: Question payload
            callbacks: Collaborator hooks

        Returns:
            Final state of the answer (finalized, failed or cancelled)
        """
        callbacks = callbacks or StreamCallbacks()
        payload = request.model_dump(mode="json") if isinstance(request, BaseModel) else dict(request)

        token = self.registry.register(answer_id)
        accumulator = StreamAccumulator(
            answer_id,
            callbacks=self._wire_callbacks(answer_id, callbacks),
            min_partial_answer_chars=self.settings.stream_min_partial_answer_chars,
        )
        inbox: "asyncio.Queue[InboxMessage]" = asyncio.Queue()

        reader = asyncio.create_task(self._read(answer_id, payload, inbox, token, callbacks))
        token.add_callback(reader.cancel)
        token.add_callback(lambda: inbox.put_nowait(InboxMessage(InboxKind.CANCELLED)))
        if self.pacing is not None:
            pacing = self.pacing
            token.add_callback(lambda: pacing.cancel(answer_id))

        self.logger.info("Answer stream started", answer_id=answer_id)
        try:
            await self._own(accumulator, inbox, token)
        finally:
            if not reader.done():
                reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
            self.registry.release(answer_id, token)

        state = accumulator.state
        self.logger.info(
            "Answer stream ended",
            answer_id=answer_id,
            phase=state.phase.value,
            text_length=len(state.accumulated_text),
        )
        return state

    def start_answer(
        self,
        answer_id: str,
        request: Union[AnswerRequest, Dict[str, Any]],
        callbacks: Optional[StreamCallbacks] = None,
    ) -> "asyncio.Task[StreamState]":
        """Run :meth:`stream_answer` in a background task."""
        task = asyncio.create_task(self.stream_answer(answer_id, request, callbacks))
        self._tasks[answer_id] = task

        def _forget(done: "asyncio.Task[StreamState]") -> None:
            if self._tasks.get(answer_id) is done:
                del self._tasks[answer_id]

        task.add_done_callback(_forget)
        return task

    def cancel(self, answer_id: str) -> bool:
        """Cancel one answer. Other answers are unaffected."""
        return self.registry.cancel(answer_id)

    def active_answers(self) -> List[str]:
        return self.registry.active_ids()

    async def close(self) -> None:
        """Cancel every answer and release the transport."""
        for answer_id in self.registry.active_ids():
            self.registry.cancel(answer_id)
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self.pacing is not None:
            await self.pacing.close()
        if self._owns_transport:
            await self.transport.close()

    async def _own(
        self,
        accumulator: StreamAccumulator,
        inbox: "asyncio.Queue[InboxMessage]",
        token: CancellationToken,
    ) -> None:
        """Single writer for the answer's state."""
        while not accumulator.state.is_terminal:
            try:
                message = await asyncio.wait_for(inbox.get(), timeout=self.idle_timeout)
            except asyncio.TimeoutError:
                if token.is_cancelled:
                    accumulator.cancel()
                else:
                    await accumulator.on_idle_timeout()
                break

            if token.is_cancelled or message.kind is InboxKind.CANCELLED:
                accumulator.cancel()
                break

            if message.kind is InboxKind.ACTIVITY:
                continue
            if message.kind is InboxKind.EVENT:
                await accumulator.handle(message.payload)
            elif message.kind is InboxKind.CLOSED:
                await accumulator.on_transport_closed()
            elif message.kind is InboxKind.FAILED:
                await accumulator.on_transport_failed(message.payload)

    async def _read(
        self,
        answer_id: str,
        payload: Dict[str, Any],
        inbox: "asyncio.Queue[InboxMessage]",
        token: CancellationToken,
        callbacks: StreamCallbacks,
    ) -> None:
        """Reader task: transport bytes to parsed events in the inbox."""
        dispatched = False

        async def attempt() -> Optional[Exception]:
            nonlocal dispatched
            ingestion = ByteIngestionLayer(answer_id=answer_id)
            try:
                async with self.transport.open(payload) as chunks:
                    async for chunk in chunks:
                        for frame in ingestion.feed(chunk):
                            dispatched = self._dispatch(frame, inbox) or dispatched
                    for frame in ingestion.finish():
                        dispatched = self._dispatch(frame, inbox) or dispatched
            except Exception as e:
                # Once events reached the accumulator a retry would duplicate them
                if dispatched:
                    return e
                raise
            return None

        async def on_reconnecting(attempt_number: int, error: BaseException) -> None:
            if not token.is_cancelled:
                await invoke(callbacks.on_reconnecting, attempt_number, error)

        async def on_reconnected(attempt_number: int) -> None:
            if not token.is_cancelled:
                await invoke(callbacks.on_reconnected, attempt_number)

        try:
            failure = await self.reconnect.run_with_retry(
                attempt, on_reconnecting=on_reconnecting, on_reconnected=on_reconnected
            )
        except Exception as e:
            self.logger.error("Answer stream connection failed", answer_id=answer_id, error=str(e))
            inbox.put_nowait(InboxMessage(InboxKind.FAILED, e))
            return

        if failure is not None:
            self.logger.warning(
                "Answer stream dropped mid-answer", answer_id=answer_id, error=str(failure)
            )
            inbox.put_nowait(InboxMessage(InboxKind.FAILED, failure))
        else:
            inbox.put_nowait(InboxMessage(InboxKind.CLOSED))

    @staticmethod
    def _dispatch(frame: str, inbox: "asyncio.Queue[InboxMessage]") -> bool:
        event = parse_frame(frame)
        if event is None:
            inbox.put_nowait(InboxMessage(InboxKind.ACTIVITY))
            return False
        inbox.put_nowait(InboxMessage(InboxKind.EVENT, event))
        return True

    def _wire_callbacks(self, answer_id: str, callbacks: StreamCallbacks) -> StreamCallbacks:
        """Route tokens through the pacing engine when one is configured."""
        pacing = self.pacing
        if pacing is None:
            return callbacks

        async def on_token(text: str) -> None:
            pacing.enqueue(answer_id, text)
            await invoke(callbacks.on_token, text)

        async def on_flush() -> None:
            await pacing.flush_remaining(answer_id)
            await invoke(callbacks.on_flush)

        async def on_complete(answer: str, sources: List[Source], metadata: Dict[str, Any]) -> None:
            pacing.finish(answer_id)
            await invoke(callbacks.on_complete, answer, sources, metadata)

        async def on_error(error: Exception) -> None:
            pacing.finish(answer_id)
            await invoke(callbacks.on_error, error)

        return replace(
            callbacks,
            on_token=on_token,
            on_flush=on_flush,
            on_complete=on_complete,
            on_error=on_error,
        )
