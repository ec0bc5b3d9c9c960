"""
FastAPI Application
==================

HTTP entry point for the answer stream.

Routes:
- POST /v1/answers/stream: answer as Server-Sent Events
- GET /v1/health: liveness and active stream count
"""

from contextlib import asynccontextmanager
import uuid
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException
import uvicorn

from answerstream.config.settings import get_settings
from answerstream.config.logging import bind_request_context, get_logger
from answerstream.models.events import ErrorCode
from answerstream.models.schemas import ErrorResponse
from answerstream.api.routes.health import router as health_router
from answerstream.api.routes.stream import router as stream_router

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Log startup configuration and shutdown."""
    logger.info(
        "Answer stream service starting",
        environment=settings.environment,
        max_response_bytes=settings.sse_max_response_bytes,
        heartbeat_interval_seconds=settings.sse_heartbeat_interval_seconds,
    )
    try:
        yield
    finally:
        logger.info("Answer stream service stopped")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    description="Token-by-token answer streaming over Server-Sent Events",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# No compression middleware: it buffers the event stream
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_hosts,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER, "X-Answer-ID"],
)

app.include_router(health_router)
app.include_router(stream_router)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:  # type: ignore
    """Assign a request id, bind it to the logging context and echo it back."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_context(request_id=request_id, path=request.url.path)

    response = await call_next(request)  # type: ignore
    response.headers[REQUEST_ID_HEADER] = request_id
    return response  # type: ignore


def _error_json(request: Request, status_code: int, error_response: ErrorResponse) -> JSONResponse:
    if error_response.request_id is None:
        error_response.request_id = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=status_code, content=error_response.model_dump(mode="json"))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured body for HTTP errors raised by routing or handlers."""
    logger.warning("HTTP error", status_code=exc.status_code, detail=exc.detail)
    return _error_json(
        request,
        exc.status_code,
        ErrorResponse(error=str(exc.detail), error_code=str(exc.status_code)),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reject malformed answer requests before any stream is opened."""
    errors = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    logger.info("Invalid answer request", error_count=len(errors))
    return _error_json(
        request,
        422,
        ErrorResponse(
            error="Invalid request",
            error_code=ErrorCode.INVALID_REQUEST.value,
            details={"errors": errors},
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for errors outside a running stream."""
    logger.error("Unhandled exception", error_type=type(exc).__name__, error=str(exc))
    return _error_json(
        request,
        500,
        ErrorResponse(
            error="Internal server error",
            error_code="INTERNAL_ERROR",
            details={"type": type(exc).__name__},
        ),
    )


def run_development_server() -> None:
    """Serve the app under uvicorn, reloading on change in debug mode."""
    uvicorn.run(
        "answerstream.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=None if settings.debug else settings.workers,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    run_development_server()
