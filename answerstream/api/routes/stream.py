"""
Answer Stream Routes
====================

FastAPI routes that stream answers as Server-Sent Events.
"""

from typing import AsyncGenerator, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from answerstream.config.settings import get_settings
from answerstream.config.logging import get_logger
from answerstream.core.producer import AnswerProducer, get_answer_producer
from answerstream.models.schemas import AnswerRequest
from answerstream.api.sse.emitter import SSEEmitter
from answerstream.api.sse.session import AnswerStreamSession

logger = get_logger(__name__)

SSE_MEDIA_TYPE = "text/event-stream; charset=utf-8"

SSE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable Nginx buffering
    "Transfer-Encoding": "chunked",
}

# Create router
router = APIRouter(
    prefix="/v1/answers",
    tags=["Answers"],
    responses={404: {"description": "Not found"}},
)

active_streams = 0


@router.post("/stream")
async def stream_answer(
    answer_request: AnswerRequest,
    request: Request,
    producer: AnswerProducer = Depends(get_answer_producer),
) -> StreamingResponse:
    """
    Stream an answer token by token.

    Args:
        answer_request: Question, user and conversation history
        request: FastAPI request
        producer: Answer producer dependency

    Returns:
        Streaming response with one SSE frame per event
    """
    settings = get_settings()
    emitter = SSEEmitter(
        max_bytes=settings.sse_max_response_bytes,
        buffer_size=settings.sse_event_buffer_size,
        close_grace_seconds=settings.sse_close_grace_seconds,
        response_id=getattr(request.state, "request_id", None),
    )
    session = AnswerStreamSession(
        producer=producer,
        request=answer_request,
        emitter=emitter,
        heartbeat_interval_seconds=settings.sse_heartbeat_interval_seconds,
    )

    logger.info(
        "Answer stream requested",
        response_id=emitter.response_id,
        user_id=answer_request.user_id,
        question_preview=answer_request.question[:50],
        history_turns=len(answer_request.conversation_history),
    )

    async def event_generator() -> AsyncGenerator[bytes, None]:
        """Generate SSE frames."""
        global active_streams
        active_streams += 1
        try:
            async for frame in session.frames():
                yield frame
        finally:
            active_streams -= 1

    return StreamingResponse(
        event_generator(),
        media_type=SSE_MEDIA_TYPE,
        headers={**SSE_HEADERS, "X-Answer-ID": emitter.response_id},
    )


def get_active_stream_count() -> int:
    """Number of responses currently streaming in this worker."""
    return active_streams
