"""
Application Settings
===================

Environment-driven configuration for the answer stream service and client,
read from ``ANSWERSTREAM_*`` variables or a ``.env`` file.

The streaming constants (size ceiling, idle timeout, keep-alive interval,
pacing delays) are operational tuning values and live here rather than in
the modules that use them.
"""

import json
from pathlib import Path
from typing import List, Optional, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MEBIBYTE = 1024 * 1024

ENVIRONMENTS = frozenset({"development", "testing", "production"})
LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class Settings(BaseSettings):
    """Service and client settings."""

    # Service identity
    app_name: str = Field(default="answerstream", description="Service name")
    app_version: str = Field(default="1.0.0", description="Reported in /v1/health")
    environment: str = Field(
        default="development", description="One of development, testing, production"
    )
    debug: bool = Field(default=True, description="Enables reload and API docs")

    # HTTP server
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, description="Bind port")
    workers: int = Field(default=1, ge=1, description="uvicorn workers outside debug mode")

    # CORS
    allowed_hosts: List[str] = Field(default=["*"], description="Allowed CORS origins")

    # SSE responses
    sse_max_response_bytes: int = Field(
        default=int(9.5 * MEBIBYTE), description="Self-truncation ceiling per response"
    )
    sse_transport_hard_cap_bytes: int = Field(
        default=10 * MEBIBYTE, description="Hard response size cap of the hosting transport"
    )
    sse_heartbeat_interval_seconds: float = Field(
        default=15.0, description="Keep-alive comment interval in seconds"
    )
    sse_event_buffer_size: int = Field(
        default=100, description="Frames buffered per response before emit() waits"
    )
    sse_close_grace_seconds: float = Field(
        default=0.0, description="Delay before ending a response so proxies drain"
    )

    # Scripted answer producer
    producer_token_delay_ms: int = Field(
        default=20, description="Delay between tokens of the scripted producer"
    )

    # Streaming client
    stream_endpoint_url: str = Field(
        default="http://localhost:8000/v1/answers/stream", description="Answer stream URL"
    )
    stream_request_timeout_seconds: float = Field(
        default=360.0, description="Total client timeout for one streamed answer"
    )
    stream_connect_timeout_seconds: float = Field(
        default=10.0, description="Client connect timeout"
    )
    stream_idle_timeout_seconds: float = Field(
        default=120.0, description="Silence that ends the logical stream client-side"
    )
    stream_min_partial_answer_chars: int = Field(
        default=100, description="Minimum text for synthesizing a completion on close"
    )
    stream_reconnect_max_attempts: int = Field(default=3, description="Connection attempts")
    stream_reconnect_base_delay_seconds: float = Field(
        default=1.0, description="First reconnect backoff delay"
    )
    stream_reconnect_max_delay_seconds: float = Field(
        default=10.0, description="Maximum reconnect backoff delay"
    )

    # Byte ingestion
    ingest_chunk_threshold_bytes: int = Field(
        default=256, description="Decode without a frame terminator past this size"
    )
    ingest_partial_sequence_budget: int = Field(
        default=4, description="Bytes of an incomplete UTF-8 sequence that may be withheld"
    )

    # Character pacing
    pacing_base_delay_ms: float = Field(default=8.0, description="Delay per character")
    pacing_whitespace_delay_ms: float = Field(default=5.0, description="Delay per space")
    pacing_punctuation_delay_ms: float = Field(
        default=50.0, description="Delay after punctuation"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Optional rotating log file")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ENVIRONMENTS:
            raise ValueError(f"environment must be one of {sorted(ENVIRONMENTS)}, got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator("allowed_hosts", mode="before")
    @classmethod
    def split_allowed_hosts(cls, v: Union[str, List[str]]) -> List[str]:
        """Accept a JSON list or a comma-separated string of origins."""
        if not isinstance(v, str):
            return v
        raw = v.strip()
        if raw.startswith("["):
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                raw = raw.strip("[]")
        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @field_validator(
        "pacing_base_delay_ms",
        "pacing_whitespace_delay_ms",
        "pacing_punctuation_delay_ms",
        "stream_reconnect_base_delay_seconds",
        "stream_reconnect_max_delay_seconds",
    )
    @classmethod
    def non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_stream_limits(self) -> "Settings":
        """The self-truncation ceiling must leave room under the transport cap."""
        if self.sse_max_response_bytes >= self.sse_transport_hard_cap_bytes:
            raise ValueError("sse_max_response_bytes must be below sse_transport_hard_cap_bytes")
        if self.stream_reconnect_max_attempts < 1:
            raise ValueError("stream_reconnect_max_attempts must be at least 1")
        return self

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, env_prefix="ANSWERSTREAM_"
    )


settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Re-read the environment, replacing the process-wide settings."""
    global settings
    settings = Settings()
    return settings
