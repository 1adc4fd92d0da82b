"""
structlog setup shared by the CLI and the HTTP service.

Every event carries a UTC timestamp, its level and whatever request context was
bound with `bind_context` (the API binds ``user_id`` per recommendation call).
Production emits one JSON object per line; elsewhere events go to a colored
console renderer.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor

# Client libraries used by the index and generation adapters log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "pinecone", "uvicorn.access")


def _renderer(json_logs: bool) -> Processor:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)


def configure_logging(json_logs: bool = False, log_level: str = "INFO") -> None:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.append(structlog.processors.format_exc_info)
    processors.append(_renderer(json_logs))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level.upper(), force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every event logged from the current task until `clear_context`."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
