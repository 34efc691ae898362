"""
Structured logging for the calendar agent (structlog over stdlib logging).

Console output by default; JSON lines when CALENDAR_AGENT_LOG_FORMAT=json.
The level comes from CALENDAR_AGENT_LOG_LEVEL (default WARNING, so the CLI
stays quiet unless asked).

Meeting text never reaches the logs: values logged under `subject`,
`organizer` or `attendees` are replaced with a placeholder unless
CALENDAR_AGENT_LOG_EVENT_TEXT=1.

Usage:
    from calendar_agent.logging_config import get_logger, run_context, setup_logging

    setup_logging()
    logger = get_logger(__name__)

    with run_context(dry_run=True):
        logger.info("conflicts_resolved", applied=2)   # carries run_id and dry_run
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog

REDACTED = "[redacted]"
EVENT_TEXT_KEYS = ("subject", "organizer", "attendees")


def redact_event_text(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor replacing meeting text with a placeholder."""
    for key in EVENT_TEXT_KEYS:
        if key in event_dict:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(
    level: str | None = None,
    json_output: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    if level is None:
        level = os.environ.get("CALENDAR_AGENT_LOG_LEVEL", "WARNING")

    if json_output is None:
        json_output = os.environ.get("CALENDAR_AGENT_LOG_FORMAT", "").lower() == "json"

    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if os.environ.get("CALENDAR_AGENT_LOG_EVENT_TEXT") != "1":
        shared_processors.append(redact_event_text)

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Plain logging.getLogger() records share the renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def run_context(run_id: str | None = None, **context: Any) -> Iterator[str]:
    """
    Bind a run id (and any extra keys) to every log event in the block.

    Yields:
        The run id
    """
    run_id = run_id or uuid.uuid4().hex[:8]
    with structlog.contextvars.bound_contextvars(run_id=run_id, **context):
        yield run_id


__all__ = ["get_logger", "redact_event_text", "run_context", "setup_logging"]
