"""
Structured logging for batchproc.

Manifesto:
    A batch runs unattended for as long as its slowest job. Its log has to
    say what was admitted, what was reaped and what is still in flight,
    without a debugger attached.

    - **Key/value events:** ``batch.job_reaped job_id=7 key=3``
    - **Per-run correlation:** ``batch_id`` is bound for the whole of
      ``BatchProcessor.start()``
    - **Two renderings:** coloured console lines on a terminal, ECS-style
      JSON lines everywhere else

Architecture:
    ::

        configure_logging(level, json_format, service)
            │
            ▼
        TimeStamper(iso)            (optional)
        merge_contextvars           ← LogContext(batch_id=...)
        add_log_level
        StackInfoRenderer / set_exc_info
        _add_service_name
        ┌─ json ─────────────────────┐   ┌─ console ───────┐
        │ _ecs_field_names           │   │ ConsoleRenderer │
        │ format_exc_info            │   └─────────────────┘
        │ JSONRenderer               │
        └────────────────────────────┘
            │
            ▼
        stderr   (stdout is reserved for job results in the CLI)

Event names:
    batch.started, batch.waiting, batch.job_admitted, batch.job_reaped,
    batch.draining, batch.completed, batch.failed, process.started,
    process.finished, process.timed_out, process.stopped

Examples:
    >>> from batchproc.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=True)
    >>> log = get_logger(__name__)
    >>> with LogContext(batch_id="3f2a9c01b7de"):
    ...     log.info("batch.started", max_concurrent=4)

Tags:
    logging, structlog, observability, batchproc

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from batchproc.core.errors import InvalidConfigError

_service_name = "batchproc"


def _add_service_name(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service.name", _service_name)
    return event_dict


def _ecs_field_names(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Rename structlog's default keys to their ECS equivalents."""
    for ours, ecs in (("timestamp", "@timestamp"), ("level", "log.level")):
        if ours in event_dict:
            event_dict[ecs] = event_dict.pop(ours)
    return event_dict


def _resolve_level(level: str) -> int:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise InvalidConfigError("log_level", level, f"Unknown log level: {level!r}")
    return numeric


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "batchproc",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog (and the stdlib root logger) for a batch run.

    Args:
        level: Minimum level name, e.g. ``DEBUG`` or ``WARNING``
        json_format: True for JSON lines, False for console output,
            None to pick JSON whenever stderr is not a terminal
        service: Value of the ``service.name`` field
        add_timestamp: Prefix every event with an ISO timestamp

    Raises:
        InvalidConfigError: If ``level`` is not a known level name.
    """
    global _service_name
    _service_name = service
    numeric_level = _resolve_level(level)

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = []
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_name,
    ]

    if json_format:
        processors += [
            _ecs_field_names,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger, tagged with ``logger_name`` when named."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger_name=name)


def bind_context(**kwargs: Any) -> None:
    """Bind key/values to every later event in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind key/values for the duration of a ``with`` block.

    Previous values of the same keys are restored on exit, so nested
    contexts behave.

    Example:
        with LogContext(batch_id=processor.batch_id):
            logger.info("batch.job_admitted", job_id=3)
    """

    def __init__(self, **kwargs: Any):
        self._values = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._values)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
        self._tokens = {}


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "LogContext",
]
