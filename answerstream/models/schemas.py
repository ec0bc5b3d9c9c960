"""
Pydantic Models and Schemas
===========================

API request and response models for the answer streaming endpoints.
"""

from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class ConversationRole(str, Enum):
    """Speaker of a prior conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """One prior message passed along for in-conversation memory."""

    role: ConversationRole = Field(..., description="Speaker")
    content: str = Field(..., description="Message text")


class AnswerRequest(BaseModel):
    """Request model for a streamed answer."""

    question: str = Field(..., min_length=1, max_length=8000, description="User question")
    user_id: str = Field(..., min_length=1, description="User identifier")
    conversation_history: List[ConversationTurn] = Field(
        default_factory=list, description="Prior turns, oldest first"
    )

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        """Validate question is not blank."""
        if not v.strip():
            raise ValueError("Question cannot be empty")
        return v


class HealthStatus(BaseModel):
    """Health check status."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(..., description="Overall status")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Check timestamp"
    )
    version: str = Field(..., description="Application version")
    active_streams: int = Field(0, ge=0, description="Responses currently streaming")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Error timestamp"
    )
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")
