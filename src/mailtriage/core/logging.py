"""Structured logging configuration for the mail triage service.

Uses structlog on top of stdlib handlers: logs go to stdout (JSON or console)
and, optionally, to a file as JSON lines. Supports a correlation ID
(scan_run_id) via contextvars so every entry of one scan run can be traced.

Usage:
    from mailtriage.core.logging import get_logger, set_correlation_id

    logger = get_logger(__name__)

    # In the scan engine:
    set_correlation_id(str(uuid.uuid4()))

    logger.info("labels_applied", messages=12, label="Receipts")
"""

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import structlog

# Context variable for correlation ID (scan_run_id)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context.

    Args:
        correlation_id: UUID string for this scan run, or None to clear
    """
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get the current correlation ID, if set."""
    return _correlation_id.get()


def add_correlation_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor to add correlation ID to log entries."""
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["scan_run_id"] = correlation_id
    return event_dict


# Handlers installed by configure_logging carry this name prefix so a second
# call replaces them instead of stacking duplicates
_HANDLER_PREFIX = "mailtriage-"


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_correlation_id,
    ]


def _json_renderers() -> list[structlog.types.Processor]:
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def _make_handler(
    handler: logging.Handler,
    name: str,
    renderers: list[structlog.types.Processor],
) -> logging.Handler:
    handler.set_name(_HANDLER_PREFIX + name)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
        )
    )
    return handler


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    log_file: str | Path | None = None,
) -> None:
    """Configure structlog for the application.

    Every entry goes to stdout; when `log_file` is set it is also appended
    to that file as one JSON object per line, whatever the console format.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, stdout gets JSON; if False, human-readable lines
        log_file: Optional path of a JSON log file (parent dirs are created)
    """
    console_renderers = (
        _json_renderers() if json_output else [structlog.dev.ConsoleRenderer(colors=True)]
    )
    handlers = [_make_handler(logging.StreamHandler(sys.stdout), "console", console_renderers)]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _make_handler(logging.FileHandler(path, encoding="utf-8"), "file", _json_renderers())
        )

    root = logging.getLogger()
    for existing in list(root.handlers):
        if (existing.get_name() or "").startswith(_HANDLER_PREFIX):
            root.removeHandler(existing)
            existing.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper()))

    structlog.configure(
        processors=_shared_processors() + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        A structlog BoundLogger instance configured for this application
    """
    return structlog.get_logger(name)
