"""
End-to-End Answer Stream Tests
==============================

Drives the FastAPI endpoint in-process and feeds its body into the
streaming client, checking the client rebuilds what the server produced.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

import httpx
import pytest

from answerstream.api.main import app
from answerstream.client.accumulator import StreamPhase
from answerstream.client.errors import StreamRequestError
from answerstream.client.stream_client import StreamingAnswerClient
from answerstream.core.producer import ScriptedAnswerProducer, get_answer_producer
from answerstream.models.events import Source

from tests.fixtures.stream_fixtures import RecordingCallbacks, split_every

ANSWER = "Ein normaler Nüchternblutzucker liegt unter 5,6 mmol/L. 🙂 Fragen Sie Ihren Arzt."


class ASGIStreamTransport:
    """Transport that posts to the ASGI app in-process and re-chunks the body."""

    def __init__(self, chunk_size: int = 5) -> None:
        self.chunk_size = chunk_size
        self.client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://answerstream.test"
        )

    @asynccontextmanager
    async def open(self, payload: Dict[str, Any]) -> AsyncIterator[AsyncIterator[bytes]]:
        async with self.client.stream("POST", "/v1/answers/stream", json=payload) as response:
            if response.status_code >= 400:
                await response.aread()
                raise StreamRequestError(response.text, status=response.status_code)

            async def chunks() -> AsyncIterator[bytes]:
                async for raw in response.aiter_raw():
                    for chunk in split_every(raw, self.chunk_size):
                        yield chunk

            yield chunks()

    async def close(self) -> None:
        await self.client.aclose()


@pytest.fixture
def guide_producer():
    """Serve a known multilingual answer with sources."""
    producer = ScriptedAnswerProducer(
        answer=ANSWER,
        sources=[Source(title="Leitlinie", url="https://example.org/leitlinie", kind="guideline")],
        token_delay_seconds=0,
        tier=2,
    )
    app.dependency_overrides[get_answer_producer] = lambda: producer
    yield producer
    app.dependency_overrides.pop(get_answer_producer, None)


@pytest.mark.integration
@pytest.mark.sse
class TestAnswerStreamEndToEnd:
    """Server and client together."""

    @pytest.mark.asyncio
    async def test_client_rebuilds_server_answer(self, test_settings, answer_request, guide_producer):
        """Test the reconstructed answer matches the produced one."""
        transport = ASGIStreamTransport(chunk_size=5)
        client = StreamingAnswerClient(transport=transport, settings=test_settings)
        callbacks = RecordingCallbacks()

        try:
            state = await client.stream_answer("e2e", answer_request, callbacks.as_callbacks())
        finally:
            await transport.close()

        assert state.phase is StreamPhase.FINALIZED
        assert "".join(callbacks.tokens) == ANSWER
        answer, sources, metadata = callbacks.completions[0]
        assert answer == ANSWER
        assert [s.url for s in sources] == ["https://example.org/leitlinie"]
        assert metadata["model_used"] == "scripted"
        assert metadata["processing_tier"] == "MODEL"
        assert state.tier == 2
        assert "flush" in callbacks.names
        assert callbacks.names.index("complete") > callbacks.names.index("flush")

    @pytest.mark.asyncio
    async def test_invalid_request_is_permanent(self, test_settings):
        """Test a rejected request fails without retries."""
        transport = ASGIStreamTransport()
        client = StreamingAnswerClient(transport=transport, settings=test_settings)
        callbacks = RecordingCallbacks()

        try:
            state = await client.stream_answer(
                "bad", {"question": " ", "user_id": "u1"}, callbacks.as_callbacks()
            )
        finally:
            await transport.close()

        assert state.phase is StreamPhase.FAILED
        assert isinstance(callbacks.errors[0], StreamRequestError)
        assert callbacks.errors[0].status == 422
