"""
Answer Producers
================

The seam between the streaming transport and the answer generator.

A producer turns an ``AnswerRequest`` into an async iterator of items. A
``str`` item is a fragment of answer text; any stream event is forwarded as
is (sources, stage progress, tier selection, completion, flush comments).
The LLM-backed producers live with the collaborators that own the model
calls; this module only ships the protocol and a scripted producer used in
development and tests.
"""

from typing import AsyncIterator, List, Optional, Protocol, Sequence, Union, runtime_checkable
import asyncio
import re
import time

from answerstream.config.logging import get_logger
from answerstream.config.settings import get_settings
from answerstream.models.events import (
    CommentEvent,
    CompleteEvent,
    KnownComment,
    Source,
    SourcesReadyEvent,
    StageProgressEvent,
    StreamEvent,
    TierSelectedEvent,
)
from answerstream.models.schemas import AnswerRequest

logger = get_logger(__name__)

ProducerItem = Union[str, StreamEvent]


@runtime_checkable
class AnswerProducer(Protocol):
    """Source of answer text and side-channel events for one request."""

    def stream(self, request: AnswerRequest) -> AsyncIterator[ProducerItem]:
        ...


def split_into_word_tokens(text: str) -> List[str]:
    """Split text into word tokens that keep their leading whitespace."""
    return re.findall(r"\s*\S+|\s+$", text)


class ScriptedAnswerProducer:
    """Producer that replays a fixed answer word by word."""

    def __init__(
        self,
        answer: Optional[str] = None,
        sources: Optional[Sequence[Source]] = None,
        token_delay_seconds: Optional[float] = None,
        tier: int = 1,
    ) -> None:
        settings = get_settings()
        self.answer = answer
        self.sources = list(sources) if sources is not None else [
            Source(title="General knowledge base", kind="knowledge_base")
        ]
        self.token_delay_seconds = (
            token_delay_seconds
            if token_delay_seconds is not None
            else settings.producer_token_delay_ms / 1000
        )
        self.tier = tier

    def _answer_for(self, request: AnswerRequest) -> str:
        if self.answer is not None:
            return self.answer
        return f"You asked: {request.question.strip()}. This is a scripted answer."

    async def stream(self, request: AnswerRequest) -> AsyncIterator[ProducerItem]:
        """Yield tier selection, progress, tokens, a flush comment and the completion."""
        started_at = time.monotonic()
        yield TierSelectedEvent(tier=self.tier, reasoning="scripted", confidence=1.0)
        yield StageProgressEvent(stage="generating", message="Generating answer...", sequence=1)

        if self.tier > 1 and self.sources:
            yield SourcesReadyEvent(sources=self.sources)

        tokens = split_into_word_tokens(self._answer_for(request))
        logger.debug("Streaming scripted answer", tokens=len(tokens), tier=self.tier)
        for token in tokens:
            if self.token_delay_seconds > 0:
                await asyncio.sleep(self.token_delay_seconds)
            yield token

        yield CommentEvent(text=KnownComment.FLUSH_TOKENS.value)
        yield CompleteEvent(
            sources=self.sources,
            metadata={
                "processing_time": f"{time.monotonic() - started_at:.2f}s",
                "model_used": "scripted",
                "cost_tier": "none",
            },
            processing_tier="MODEL",
        )


def get_answer_producer() -> AnswerProducer:
    """
    FastAPI dependency providing the answer producer.

    Deployments override this dependency with their LLM-backed producer.
    """
    return ScriptedAnswerProducer()
