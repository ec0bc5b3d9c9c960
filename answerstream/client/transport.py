"""
Stream Transport
================

HTTP transport for the answer stream endpoint.

A transport opens one streaming POST and yields raw byte chunks exactly as
they arrive; framing and decoding happen in the ingestion layer.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Protocol, runtime_checkable

import aiohttp

from answerstream.config.logging import get_logger
from answerstream.config.settings import Settings, get_settings
from answerstream.client.errors import StreamRequestError, StreamTransportError

logger = get_logger(__name__)

ByteChunks = AsyncIterator[bytes]


@runtime_checkable
class AnswerStreamTransport(Protocol):
    """Opens a streaming answer connection."""

    def open(self, payload: Dict[str, Any]) -> Any:
        """Return an async context manager yielding an iterator of byte chunks."""
        ...

    async def close(self) -> None:
        ...


class AiohttpStreamTransport:
    """aiohttp implementation of :class:`AnswerStreamTransport`."""

    def __init__(self, endpoint_url: Optional[str] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.endpoint_url = endpoint_url or self.settings.stream_endpoint_url
        self.logger: Any = logger.bind(component="aiohttp_stream_transport")
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            # No read timeout: idle detection belongs to the accumulator
            timeout = aiohttp.ClientTimeout(
                total=self.settings.stream_request_timeout_seconds,
                connect=self.settings.stream_connect_timeout_seconds,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @asynccontextmanager
    async def open(self, payload: Dict[str, Any]) -> AsyncIterator[ByteChunks]:
        """
        POST the request and yield the response body as raw chunks.

        Raises:
            StreamRequestError: The server answered with a 4xx status
            StreamTransportError: Connection failure or 5xx status
        """
        session = await self._get_session()
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}

        try:
            async with session.post(self.endpoint_url, json=payload, headers=headers) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    message = f"Stream request failed: {response.status} - {error_text[:200]}"
                    self.logger.warning(
                        "Stream request rejected", status=response.status, response=error_text[:200]
                    )
                    if response.status < 500:
                        raise StreamRequestError(message, status=response.status)
                    raise StreamTransportError(message)

                self.logger.debug(
                    "Stream connection opened",
                    status=response.status,
                    answer_id=response.headers.get("X-Answer-ID"),
                )
                yield response.content.iter_any()
        except aiohttp.ClientError as e:
            self.logger.error("Stream connection error", error=str(e))
            raise StreamTransportError(f"Stream connection failed: {e}") from e

