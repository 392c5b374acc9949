"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys

import structlog

from alertflow.core.config import get_settings

# Logger name used by the pipeline for one record per evaluated event.
DECISION_LOGGER = "decision_log"


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    decision_log: bool | None = None,
) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer format override ("json" or "console"). Uses config if None.
        decision_log: Whether per-event decision records are emitted.
            Uses config if None.
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.logging.level).upper(), logging.INFO)
    log_format = fmt or settings.logging.format
    emit_decisions = (
        settings.logging.decision_log if decision_log is None else decision_log
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        shared_processors.append(structlog.processors.dict_tracebacks)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    logging.getLogger(DECISION_LOGGER).disabled = not emit_decisions
    # aiohttp stays at WARNING or above.
    logging.getLogger("aiohttp").setLevel(max(log_level, logging.WARNING))
