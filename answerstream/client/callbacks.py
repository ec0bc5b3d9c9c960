"""
Client Callbacks
================

Collaborator hooks fired by the streaming client.

Every hook is optional and may be a plain function or a coroutine function.
"""

from dataclasses import dataclass
import inspect
from typing import Any, Callable, Dict, List, Optional

from answerstream.models.events import (
    SearchCompleteEvent,
    Source,
    StageProgressEvent,
    TierSelectedEvent,
)

OnToken = Callable[[str], Any]
OnSourcesReady = Callable[[List[Source]], Any]
OnStageProgress = Callable[[StageProgressEvent], Any]
OnComplete = Callable[[str, List[Source], Dict[str, Any]], Any]
OnError = Callable[[Exception], Any]
OnTierSelected = Callable[[TierSelectedEvent], Any]
OnSearchComplete = Callable[[SearchCompleteEvent], Any]
OnFlush = Callable[[], Any]
OnReconnecting = Callable[[int, BaseException], Any]
OnReconnected = Callable[[int], Any]


@dataclass
class StreamCallbacks:
    on_token: Optional[OnToken] = None
    on_sources_ready: Optional[OnSourcesReady] = None
    on_stage_progress: Optional[OnStageProgress] = None
    on_complete: Optional[OnComplete] = None
    on_error: Optional[OnError] = None
    on_tier_selected: Optional[OnTierSelected] = None
    on_search_complete: Optional[OnSearchComplete] = None
    on_flush: Optional[OnFlush] = None
    on_reconnecting: Optional[OnReconnecting] = None
    on_reconnected: Optional[OnReconnected] = None


async def invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    """Call a hook, awaiting it when it returns an awaitable."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
