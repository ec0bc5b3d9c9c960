"""
Reconnection Controller
=======================

Retries transport-level failures with exponential backoff and jitter.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from answerstream.config.logging import get_logger
from answerstream.config.settings import get_settings
from answerstream.client.callbacks import OnReconnected, OnReconnecting, invoke
from answerstream.client.errors import (
    ReconnectExhaustedError,
    StreamRequestError,
    StreamTransportError,
)

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (StreamTransportError, aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)


def is_retryable(error: BaseException) -> bool:
    """Transport failures are retried; rejected requests are not."""
    if isinstance(error, StreamRequestError):
        return False
    return isinstance(error, RETRYABLE_ERRORS)


class ReconnectionController:
    """Runs an operation, retrying it after transport failures."""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        jitter: float = 0.2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.stream_reconnect_max_attempts
        )
        self.base_delay = (
            base_delay if base_delay is not None else settings.stream_reconnect_base_delay_seconds
        )
        self.max_delay = (
            max_delay if max_delay is not None else settings.stream_reconnect_max_delay_seconds
        )
        self.jitter = jitter
        self._sleep = sleep
        self.logger: Any = logger.bind(component="reconnection_controller")

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(delay, 0.0)

    async def run_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        on_reconnecting: Optional[OnReconnecting] = None,
        on_reconnected: Optional[OnReconnected] = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds or attempts run out.

        Args:
            operation: Coroutine factory, called once per attempt
            max_attempts: Total attempts including the first
            on_reconnecting: Called with (attempt, error) before each retry
            on_reconnected: Called with the attempt number after a retry succeeds

        Returns:
            The operation's result

        Raises:
            StreamRequestError: The server rejected the request
            ReconnectExhaustedError: Every attempt failed with a transport error
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        attempts = max(attempts, 1)
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                retry = attempt - 1
                delay = self.backoff_delay(retry)
                self.logger.warning(
                    "Retrying stream connection",
                    attempt=retry,
                    max_attempts=attempts - 1,
                    delay=round(delay, 3),
                    error=str(last_error),
                )
                await invoke(on_reconnecting, retry, last_error)
                await self._sleep(delay)

            try:
                result = await operation()
            except Exception as e:
                if not is_retryable(e):
                    raise
                last_error = e
                continue

            if attempt > 1:
                self.logger.info("Stream connection re-established", attempt=attempt - 1)
                await invoke(on_reconnected, attempt - 1)
            return result

        self.logger.error("Stream reconnection exhausted", attempts=attempts, error=str(last_error))
        partial_text = getattr(last_error, "partial_text", "")
        raise ReconnectExhaustedError(
            f"Connection failed after {attempts} attempts: {last_error}",
            attempts=attempts,
            last_error=last_error,
            partial_text=partial_text,
        ) from last_error
