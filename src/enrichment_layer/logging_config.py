"""Structured logging for the enrichment layer (structlog over stdlib logging).

Production emits one JSON object per event; every other environment gets the
coloured console renderer. Both go through the standard library root logger,
so third-party libraries logging via `logging` share the same output.

Per-record correlation uses structlog contextvars: inside
`record_log_context(record)` every event (plugin tasks included, since
asyncio tasks copy the current context) carries record_id/record_type.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


APP_CONTEXT = "ai-enrichment-layer"
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag every event with the application name."""
    event_dict["app"] = APP_CONTEXT
    return event_dict


def build_processors(json_output: bool) -> list[Processor]:
    """Processor chain shared by structlog and foreign (stdlib) records."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]
    if json_output:
        processors.append(structlog.processors.format_exc_info)
    return processors


def configure_logging(
    log_level: str = "INFO",
    environment: str = "development",
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog and route it through a single root handler.

    Args:
        log_level: Logging level name; unknown names fall back to INFO
        environment: "production" selects the JSON renderer
        stream: Output stream (defaults to stdout)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    json_output = environment.lower() == "production"
    shared = build_processors(json_output)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: Processor = (
        structlog.processors.JSONRenderer() if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared)
    )
    handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Provider transports log every request at INFO
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        log_level=logging.getLevelName(level),
        environment=environment,
        renderer="json" if json_output else "console",
    )


@contextmanager
def record_log_context(record: Mapping[str, Any]) -> Iterator[None]:
    """Bind record_id/record_type to every log event emitted inside the block."""
    with structlog.contextvars.bound_contextvars(
        record_id=record.get("id"),
        record_type=record.get("type"),
    ):
        yield
