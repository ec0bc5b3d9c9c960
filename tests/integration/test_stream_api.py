"""
Integration Tests for the Answer Stream API
===========================================

Tests for the HTTP surface: headers, frame sequence, validation and the
response size ceiling.
"""

import pytest

import answerstream.config.settings as settings_module
from answerstream.api.main import app
from answerstream.core.producer import ScriptedAnswerProducer, get_answer_producer
from answerstream.models.events import Source

from tests.utils.helpers import comment_texts, data_payloads

STREAM_URL = "/v1/answers/stream"


@pytest.fixture
def scripted_producer():
    """Install a scripted producer with a known answer for one test."""
    producer = ScriptedAnswerProducer(
        answer="The answer is 42.",
        sources=[Source(title="Guide", url="https://example.org/guide")],
        token_delay_seconds=0,
        tier=2,
    )
    app.dependency_overrides[get_answer_producer] = lambda: producer
    yield producer
    app.dependency_overrides.pop(get_answer_producer, None)


@pytest.mark.integration
@pytest.mark.sse
class TestAnswerStreamEndpoint:
    """Test POST /v1/answers/stream."""

    def test_response_headers(self, fastapi_client, scripted_producer):
        """Test the SSE headers that defeat caching and proxy buffering."""
        response = fastapi_client.post(
            STREAM_URL, json={"question": "What is it?", "user_id": "u1"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/event-stream; charset=utf-8"
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["x-accel-buffering"] == "no"
        assert response.headers["connection"] == "keep-alive"
        assert response.headers["transfer-encoding"] == "chunked"
        assert response.headers["x-answer-id"] == response.headers["x-request-id"]

    def test_frame_sequence(self, fastapi_client, scripted_producer):
        """Test events arrive in producer order and the stream ends cleanly."""
        response = fastapi_client.post(
            STREAM_URL, json={"question": "What is it?", "user_id": "u1"}
        )
        payloads = data_payloads(response.text)

        assert [p["type"] for p in payloads] == [
            "tier_selected",
            "stage_progress",
            "sources_ready",
            "token",
            "token",
            "token",
            "token",
            "complete",
        ]
        text = "".join(p["content"] for p in payloads if p["type"] == "token")
        assert text == "The answer is 42."
        assert payloads[-1]["sources"][0]["url"] == "https://example.org/guide"
        assert comment_texts(response.text)[-2:] == ["flush-tokens", "stream-end"]

    def test_conversation_history_accepted(self, fastapi_client, scripted_producer):
        """Test prior turns are accepted in the request body."""
        response = fastapi_client.post(
            STREAM_URL,
            json={
                "question": "And after meals?",
                "user_id": "u1",
                "conversation_history": [
                    {"role": "user", "content": "Fasting glucose?"},
                    {"role": "assistant", "content": "Below 5.6 mmol/L."},
                ],
            },
        )
        assert response.status_code == 200

    @pytest.mark.parametrize(
        "body",
        [
            {"question": "   ", "user_id": "u1"},
            {"question": "Hi"},
            {"question": "x" * 8001, "user_id": "u1"},
        ],
    )
    def test_invalid_request_rejected(self, fastapi_client, body):
        """Test invalid bodies are rejected before streaming starts."""
        response = fastapi_client.post(STREAM_URL, json=body)
        assert response.status_code == 422

    def test_size_ceiling_truncates_response(self, fastapi_client, monkeypatch):
        """Test an oversized answer ends with exactly one capacity error."""
        small = settings_module.get_settings().model_copy(update={"sse_max_response_bytes": 600})
        monkeypatch.setattr(settings_module, "settings", small)
        app.dependency_overrides[get_answer_producer] = lambda: ScriptedAnswerProducer(
            answer="word " * 500, token_delay_seconds=0
        )
        try:
            response = fastapi_client.post(
                STREAM_URL, json={"question": "Long?", "user_id": "u1"}
            )
        finally:
            app.dependency_overrides.pop(get_answer_producer, None)

        payloads = data_payloads(response.text)
        errors = [p for p in payloads if p["type"] == "error"]
        assert len(errors) == 1
        assert errors[0]["code"] == "response_too_large"
        assert payloads[-1] == errors[0]
        assert all(p["type"] != "complete" for p in payloads)

    def test_producer_failure_reported_in_stream(self, fastapi_client):
        """Test a failing producer yields a friendly error event."""

        class FailingProducer:
            async def stream(self, request):
                yield "Partial"
                raise RuntimeError("upstream timeout")

        app.dependency_overrides[get_answer_producer] = lambda: FailingProducer()
        try:
            response = fastapi_client.post(
                STREAM_URL, json={"question": "Q?", "user_id": "u1"}
            )
        finally:
            app.dependency_overrides.pop(get_answer_producer, None)

        payloads = data_payloads(response.text)
        assert payloads[0] == {"type": "token", "content": "Partial"}
        assert payloads[-1]["code"] == "generation_failed"


@pytest.mark.integration
class TestHealthEndpoint:
    """Test GET /v1/health."""

    def test_health(self, fastapi_client):
        """Test the health payload."""
        response = fastapi_client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["active_streams"] == 0

    def test_unknown_route_uses_error_response(self, fastapi_client):
        """Test HTTP errors use the structured error body."""
        response = fastapi_client.get("/v1/missing")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "404"
        assert body["request_id"] == response.headers["x-request-id"]
