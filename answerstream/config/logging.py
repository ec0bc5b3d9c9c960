"""
Logging Configuration
====================

structlog over the standard library. Request-scoped values bound with
``bind_request_context`` (the request id, the answer id) are merged into
every event logged while the request is handled.
"""

import logging
import logging.config
import sys
from typing import Dict, Any, List, TYPE_CHECKING
import structlog
from structlog.types import Processor

from .settings import get_settings

if TYPE_CHECKING:
    from .settings import Settings


LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Third-party loggers routed to the console only, with their own level
LIBRARY_LOG_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "fastapi": "INFO",
    "aiohttp": "WARNING",
}

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _shared_processors() -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging() -> None:
    """Configure structlog and stdlib handlers for the current environment."""
    settings = get_settings()

    processors = _shared_processors()
    if settings.environment == "production":
        processors += [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.environment != "testing"))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig(get_logging_config(settings))


def bind_request_context(**values: Any) -> None:
    """Start a fresh logging context for the current request task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


def get_logging_config(settings: "Settings") -> Dict[str, Any]:
    """
    Build the ``dictConfig`` for the stdlib side of logging.

    Production writes JSON lines to stdout; other environments write text.
    A rotating file handler is added when ``log_file`` is set, except under
    test.
    """
    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": settings.log_level,
            "formatter": "json" if settings.environment == "production" else "text",
            "stream": sys.stdout,
        },
    }

    log_file = settings.log_file
    if log_file is not None and settings.environment != "testing":
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": settings.log_level,
            "formatter": "file",
            "filename": str(log_file),
            "maxBytes": LOG_FILE_MAX_BYTES,
            "backupCount": LOG_FILE_BACKUPS,
            "encoding": "utf-8",
        }

    loggers: Dict[str, Any] = {
        name: {"level": level, "handlers": ["console"], "propagate": False}
        for name, level in LIBRARY_LOG_LEVELS.items()
    }
    loggers[""] = {"level": settings.log_level, "handlers": list(handlers), "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {"format": _TEXT_FORMAT, "datefmt": _DATE_FORMAT},
            "file": {"format": _FILE_FORMAT, "datefmt": _DATE_FORMAT},
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
    }


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


setup_logging()
