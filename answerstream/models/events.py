"""
Stream Events
=============

Tagged union of every event that travels over the answer stream.

Events are immutable Pydantic models discriminated by their ``type`` field.
The server serializes them into ``data:`` frames; the client parser validates
wire payloads back into the same classes. ``CommentEvent`` never appears in a
``data:`` payload: it is the typed form of a ``: text`` comment frame.
"""

from typing import Annotated, Optional, List, Dict, Any, Union, Literal, Iterable, Tuple
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter


class EventType(str, Enum):
    """Wire ``type`` discriminator values."""

    TOKEN = "token"
    SOURCES_READY = "sources_ready"
    STAGE_PROGRESS = "stage_progress"
    TIER_SELECTED = "tier_selected"
    SEARCH_COMPLETE = "search_complete"
    COMPLETE = "complete"
    ERROR = "error"
    COMMENT = "comment"


class KnownComment(str, Enum):
    """Comment frames with a meaning for the client."""

    KEEPALIVE = "keepalive"
    FLUSH_TOKENS = "flush-tokens"
    STREAM_END = "stream-end"


class ErrorCode(str, Enum):
    """Machine-readable codes carried by error events."""

    RESPONSE_TOO_LARGE = "response_too_large"
    INVALID_REQUEST = "invalid_request"
    GENERATION_FAILED = "generation_failed"


class Source(BaseModel):
    """A citation attached to an answer. Identity is the URL."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = Field(default="", description="Source title")
    url: Optional[str] = Field(default=None, description="Source URL (identity)")
    kind: str = Field(
        default="web",
        validation_alias=AliasChoices("kind", "type"),
        description="Source kind, e.g. pubmed, clinical_trial, knowledge_base",
    )
    snippet: Optional[str] = Field(default=None, description="Short excerpt")
    author: Optional[str] = Field(default=None, description="Author(s)")
    year: Optional[int] = Field(default=None, description="Publication year")

    @property
    def identity(self) -> Tuple[str, ...]:
        """Deduplication key: the URL, or kind and title when there is no URL."""
        if self.url:
            return ("url", self.url)
        return ("no-url", self.kind, self.title)


def merge_sources(existing: Iterable[Source], incoming: Iterable[Source]) -> List[Source]:
    """Merge two source lists, keeping first occurrences in order."""
    merged: List[Source] = []
    seen = set()
    for source in list(existing) + list(incoming):
        if source.identity in seen:
            continue
        seen.add(source.identity)
        merged.append(source)
    return merged


class _StreamEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class TokenEvent(_StreamEventBase):
    """A fragment of answer text."""

    type: Literal["token"] = "token"
    content: str


class SourcesReadyEvent(_StreamEventBase):
    """Sources known before the answer text is complete."""

    type: Literal["sources_ready"] = "sources_ready"
    sources: List[Source] = Field(default_factory=list)


class StageProgressEvent(_StreamEventBase):
    """Progress of a backend stage such as searching or synthesizing."""

    type: Literal["stage_progress"] = "stage_progress"
    stage: str
    message: str = ""
    sequence: int = 0


class TierSelectedEvent(_StreamEventBase):
    """The backend picked a processing tier for the question."""

    type: Literal["tier_selected"] = "tier_selected"
    tier: int
    reasoning: str = ""
    confidence: float = 1.0


class SearchCompleteEvent(_StreamEventBase):
    """A retrieval step finished."""

    type: Literal["search_complete"] = "search_complete"
    count: int = 0
    source: str = ""


class CompleteEvent(_StreamEventBase):
    """Logical end of the answer, carrying final sources and metadata."""

    type: Literal["complete"] = "complete"
    sources: List[Source] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    summary: Optional[Dict[str, Any]] = None
    processing_tier: Optional[str] = None
    thinking_summary: Optional[str] = None


class ErrorEvent(_StreamEventBase):
    """A user-visible error. Terminal for the response."""

    type: Literal["error"] = "error"
    message: str
    code: Optional[str] = None


class CommentEvent(_StreamEventBase):
    """A comment frame (``: text``)."""

    type: Literal["comment"] = "comment"
    text: str

    @property
    def is_keepalive(self) -> bool:
        return self.text == KnownComment.KEEPALIVE.value

    @property
    def is_flush(self) -> bool:
        return self.text == KnownComment.FLUSH_TOKENS.value


DataEvent = Annotated[
    Union[
        TokenEvent,
        SourcesReadyEvent,
        StageProgressEvent,
        TierSelectedEvent,
        SearchCompleteEvent,
        CompleteEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

StreamEvent = Union[
    TokenEvent,
    SourcesReadyEvent,
    StageProgressEvent,
    TierSelectedEvent,
    SearchCompleteEvent,
    CompleteEvent,
    ErrorEvent,
    CommentEvent,
]

data_event_adapter: TypeAdapter = TypeAdapter(DataEvent)
