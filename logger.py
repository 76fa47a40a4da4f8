"""
logger.py

Responsibility: Configures process-wide logging. Application modules keep
using logging.getLogger(__name__); this module installs a single stdout
handler whose structlog ProcessorFormatter renders every record (ours and
third-party) as logfmt or JSON.
Does NOT: decide what is logged or hold any application state.
"""

from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

LOG_FORMAT_JSON = "json"
LOG_FORMAT_LOGFMT = "logfmt"

# Chatty transport loggers that would otherwise log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "urllib3")


def resolve_log_format(log_format: str, stream: IO[str]) -> str:
    """
    Returns the effective format for a configured selector.

    An empty selector picks logfmt for an interactive terminal and JSON
    otherwise (containers, log shippers).

    Raises:
        ValueError: If the selector is not "", "logfmt" or "json".
    """
    selector = (log_format or "").strip().lower()
    if selector in (LOG_FORMAT_JSON, LOG_FORMAT_LOGFMT):
        return selector
    if selector:
        raise ValueError(f"Invalid log format: {log_format!r} (expected logfmt or json)")

    isatty = getattr(stream, "isatty", None)
    return LOG_FORMAT_LOGFMT if isatty is not None and isatty() else LOG_FORMAT_JSON


def build_formatter(log_format: str) -> structlog.stdlib.ProcessorFormatter:
    """Builds the ProcessorFormatter for an already resolved format."""
    if log_format == LOG_FORMAT_JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.processors.LogfmtRenderer(
            key_order=["timestamp", "level", "logger", "event"],
            drop_missing=True,
        )

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def configure_logging(
    log_format: str = "",
    level: str | int = "INFO",
    stream: IO[str] | None = None,
) -> str:
    """
    Installs the root handler. Safe to call more than once; each call
    replaces the handler installed by the previous one.

    Args:
        log_format: "", "logfmt" or "json".
        level: Root log level name or number.
        stream: Output stream; defaults to sys.stdout.

    Returns:
        The effective format ("logfmt" or "json").

    Raises:
        ValueError: If log_format is not a known selector.
    """
    stream = stream or sys.stdout
    effective = resolve_log_format(log_format, stream)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(build_formatter(effective))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return effective
