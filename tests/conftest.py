"""
Test Configuration
==================

Pytest configuration with fixtures for all test types.
Provides test settings, the FastAPI test client and stream test doubles.
"""

import pytest
from typing import Generator, List
from fastapi.testclient import TestClient
from pydantic_settings import SettingsConfigDict

# Settings must be installed before the application modules read them
import answerstream.config.settings as settings_module
from answerstream.config.settings import Settings


# Test settings override
class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    debug: bool = True
    log_level: str = "DEBUG"
    producer_token_delay_ms: int = 0
    stream_reconnect_base_delay_seconds: float = 0.01
    stream_reconnect_max_delay_seconds: float = 0.05
    stream_idle_timeout_seconds: float = 5.0
    pacing_base_delay_ms: float = 0.0
    pacing_whitespace_delay_ms: float = 0.0
    pacing_punctuation_delay_ms: float = 0.0

    model_config = SettingsConfigDict(env_file=".env.test")


settings_module.settings = TestSettings()

from answerstream.api.main import app  # noqa: E402
from answerstream.models.events import Source  # noqa: E402
from answerstream.models.schemas import AnswerRequest  # noqa: E402

from tests.fixtures.stream_fixtures import RecordingCallbacks  # noqa: E402


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Test settings fixture."""
    return settings_module.get_settings()


@pytest.fixture(scope="session")
def fastapi_client() -> Generator[TestClient, None, None]:
    """FastAPI test client."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def answer_request() -> AnswerRequest:
    """A minimal valid answer request."""
    return AnswerRequest(question="What is a normal fasting glucose level?", user_id="user-123")


@pytest.fixture
def sample_sources() -> List[Source]:
    """Two sources with distinct URLs."""
    return [
        Source(title="Glucose basics", url="https://example.org/glucose", kind="knowledge_base"),
        Source(
            title="Fasting glucose trial",
            url="https://example.org/trial",
            kind="clinical_trial",
            year=2021,
        ),
    ]


@pytest.fixture
def recording_callbacks() -> RecordingCallbacks:
    """Callbacks that record every call in order."""
    return RecordingCallbacks()
