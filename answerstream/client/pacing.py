"""
Pacing Engine
=============

Typewriter-style delivery of answer text.

Each answer gets its own queue of pending characters and one drain task that
reveals them one at a time. The callback always receives the full displayed
prefix, so every delivery extends the previous one.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from answerstream.config.logging import get_logger
from answerstream.config.settings import get_settings
from answerstream.client.callbacks import invoke

logger = get_logger(__name__)

PUNCTUATION = frozenset(",.!?:;")

OnDeliver = Callable[[str, str], Any]
OnDrained = Callable[[str, str], Any]


@dataclass
class AnimationQueue:
    """Pending and displayed text for one answer."""

    answer_id: str
    pending: Deque[str] = field(default_factory=deque)
    displayed: str = ""
    last_char: Optional[str] = None
    finished: bool = False
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)
    drained: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional["asyncio.Task[None]"] = None


class PacingEngine:
    """Arena of per-answer animation queues."""

    def __init__(
        self,
        on_deliver: OnDeliver,
        base_delay: Optional[float] = None,
        whitespace_delay: Optional[float] = None,
        punctuation_delay: Optional[float] = None,
        on_drained: Optional[OnDrained] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self.on_deliver = on_deliver
        self.on_drained = on_drained
        self.base_delay = (
            base_delay if base_delay is not None else settings.pacing_base_delay_ms / 1000
        )
        self.whitespace_delay = (
            whitespace_delay
            if whitespace_delay is not None
            else settings.pacing_whitespace_delay_ms / 1000
        )
        self.punctuation_delay = (
            punctuation_delay
            if punctuation_delay is not None
            else settings.pacing_punctuation_delay_ms / 1000
        )
        self._sleep = sleep
        self._queues: Dict[str, AnimationQueue] = {}
        self.logger: Any = logger.bind(component="pacing_engine")

    def compute_delay(self, char: str) -> float:
        """Pause before revealing ``char``."""
        if char in PUNCTUATION:
            return self.punctuation_delay
        if char.isspace() and char != "\n":
            return self.whitespace_delay
        return self.base_delay

    def enqueue(self, answer_id: str, text: str) -> None:
        """Queue text for an answer, starting its drain task if needed."""
        if not text:
            return
        queue = self._queues.get(answer_id)
        if queue is None:
            queue = AnimationQueue(answer_id=answer_id)
            self._queues[answer_id] = queue
            queue.task = asyncio.create_task(self._drain(queue))
        elif queue.finished:
            self.logger.warning("Text enqueued after finish, ignoring", answer_id=answer_id)
            return

        queue.pending.extend(text)
        queue.wakeup.set()

    async def flush_remaining(self, answer_id: str) -> None:
        """Reveal everything still queued for an answer at once."""
        queue = self._queues.get(answer_id)
        if queue is None or not queue.pending:
            return
        queue.displayed += "".join(queue.pending)
        queue.pending.clear()
        queue.last_char = queue.displayed[-1]
        await self._deliver(queue)
        queue.wakeup.set()

    def finish(self, answer_id: str) -> None:
        """Mark an answer's text complete; its queue is destroyed once drained."""
        queue = self._queues.get(answer_id)
        if queue is None:
            return
        queue.finished = True
        queue.wakeup.set()

    def cancel(self, answer_id: str) -> None:
        """Stop animating an answer and drop whatever is pending."""
        queue = self._queues.pop(answer_id, None)
        if queue is None:
            return
        queue.pending.clear()
        if queue.task is not None and not queue.task.done():
            queue.task.cancel()
        queue.drained.set()
        self.logger.debug("Animation cancelled", answer_id=answer_id, shown=len(queue.displayed))

    async def wait_drained(self, answer_id: str) -> None:
        """Wait until an answer's queue has drained after ``finish``."""
        queue = self._queues.get(answer_id)
        if queue is None:
            return
        await queue.drained.wait()

    def is_active(self, answer_id: str) -> bool:
        return answer_id in self._queues

    async def close(self) -> None:
        """Cancel every animation."""
        tasks = [queue.task for queue in self._queues.values() if queue.task is not None]
        for answer_id in list(self._queues):
            self.cancel(answer_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _drain(self, queue: AnimationQueue) -> None:
        while True:
            if not queue.pending:
                if queue.finished:
                    break
                queue.wakeup.clear()
                await queue.wakeup.wait()
                continue

            # Each character waits its own delay, except the very first
            if queue.last_char is not None:
                await self._sleep(self.compute_delay(queue.pending[0]))
                if not queue.pending:
                    continue

            char = queue.pending.popleft()
            queue.displayed += char
            queue.last_char = char
            await self._deliver(queue)

        if self._queues.get(queue.answer_id) is queue:
            del self._queues[queue.answer_id]
        queue.drained.set()
        try:
            await invoke(self.on_drained, queue.answer_id, queue.displayed)
        except Exception as e:
            self.logger.error("on_drained callback failed", answer_id=queue.answer_id, error=str(e))

    async def _deliver(self, queue: AnimationQueue) -> None:
        try:
            await invoke(self.on_deliver, queue.answer_id, queue.displayed)
        except Exception as e:
            self.logger.error("on_deliver callback failed", answer_id=queue.answer_id, error=str(e))
