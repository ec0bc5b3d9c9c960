"""
Cancellation
============

Per-answer cancellation tokens and the registry that owns them.

Cancelling one answer never touches another: each token is independent and
the registry only maps answer ids to their current token.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, Set

from answerstream.config.logging import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """Cooperative cancellation flag for a single answer."""

    def __init__(self, answer_id: str) -> None:
        self.answer_id = answer_id
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None
        self._callbacks: List[Callable[[], Any]] = []
        self._pending: Set["asyncio.Future[Any]"] = set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], Any]) -> None:
        """Run ``callback`` on cancellation, or now if already cancelled."""
        if self._cancelled:
            self._run_callback(callback)
        else:
            self._callbacks.append(callback)

    def cancel(self) -> bool:
        """Cancel the answer. Returns False if it was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        if self._event is not None:
            self._event.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._run_callback(callback)
        return True

    async def wait(self) -> None:
        """Wait until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def _run_callback(self, callback: Callable[[], Any]) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                future = asyncio.ensure_future(result)
                self._pending.add(future)
                future.add_done_callback(self._callback_done)
        except Exception as e:
            logger.error(
                "Cancellation callback failed", answer_id=self.answer_id, error=str(e)
            )

    def _callback_done(self, future: "asyncio.Future[Any]") -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                "Cancellation callback failed", answer_id=self.answer_id, error=str(error)
            )


class CancellationRegistry:
    """Maps answer ids to their cancellation tokens."""

    def __init__(self) -> None:
        self._tokens: Dict[str, CancellationToken] = {}
        self.logger: Any = logger.bind(component="cancellation_registry")

    def register(self, answer_id: str) -> CancellationToken:
        """Create the token for an answer, superseding any previous one."""
        previous = self._tokens.get(answer_id)
        if previous is not None and not previous.is_cancelled:
            self.logger.info("Superseding active answer", answer_id=answer_id)
            previous.cancel()

        token = CancellationToken(answer_id)
        self._tokens[answer_id] = token
        return token

    def cancel(self, answer_id: str) -> bool:
        """Cancel an answer. Returns False when the id is unknown or already cancelled."""
        token = self._tokens.get(answer_id)
        if token is None:
            return False
        cancelled = token.cancel()
        if cancelled:
            self.logger.info("Answer cancelled", answer_id=answer_id)
        return cancelled

    def is_cancelled(self, answer_id: str) -> bool:
        token = self._tokens.get(answer_id)
        return token is not None and token.is_cancelled

    def release(self, answer_id: str, token: Optional[CancellationToken] = None) -> None:
        """Forget a finished answer.

        When ``token`` is given the entry is only dropped if it is still the
        registered one, so a superseding registration survives.
        """
        current = self._tokens.get(answer_id)
        if current is None:
            return
        if token is not None and current is not token:
            return
        del self._tokens[answer_id]

    def active_ids(self) -> List[str]:
        return [answer_id for answer_id, token in self._tokens.items() if not token.is_cancelled]

    def __contains__(self, answer_id: object) -> bool:
        return answer_id in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
