"""Structlog setup for the proctree CLI.

Diagnostics from the library go through the globally configured structlog
chain and honour `-v`. Output forwarded from a supervised child is a separate
stream: it is the thing the user asked to see, so it gets its own bound
logger that is never filtered by verbosity.
"""

from __future__ import annotations

import logging as std_logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

COMMAND_OUTPUT_LOGGER = "proctree.command"

# LoggerSink method -> child stream it carries.
_STREAM_BY_METHOD = {"debug": "stdout", "error": "stderr"}


def _level_from_verbosity(verbosity: int) -> int:
    if verbosity <= 0:
        return std_logging.WARNING
    if verbosity == 1:
        return std_logging.INFO
    return std_logging.DEBUG


def _renderer(json_mode: bool) -> structlog.typing.Processor:
    if json_mode:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_logging(json_mode: bool = False, verbosity: int = 0) -> None:
    """Configure structlog and stdlib logging for CLI use; everything goes to stderr."""

    level = _level_from_verbosity(verbosity)
    handler = std_logging.StreamHandler(sys.stderr)
    handler.setFormatter(std_logging.Formatter("%(message)s"))
    std_logging.basicConfig(level=level, handlers=[handler], force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _renderer(json_mode),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _tag_stream(
    _logger: object,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    event_dict["stream"] = _STREAM_BY_METHOD.get(method_name, method_name)
    return event_dict


def _trim_chunk(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    # The printer adds its own line break.
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = event.removesuffix("\n")
    return event_dict


def _render_chunk_text(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> str:
    return f"[{event_dict['stream']}] {event_dict['event']}"


def command_output_logger(json_mode: bool = False) -> structlog.typing.FilteringBoundLogger:
    """Return a logger sink for forwarded child output.

    Stdout chunks arrive through `debug` and stderr chunks through `error`;
    both are printed to stderr whatever the configured verbosity, labelled
    with the stream they came from.
    """

    processors: list[structlog.typing.Processor] = [_tag_stream, _trim_chunk]
    if json_mode:
        processors += [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(_render_chunk_text)

    return structlog.wrap_logger(
        structlog.PrintLogger(file=sys.stderr),
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(std_logging.DEBUG),
        logger_name=COMMAND_OUTPUT_LOGGER,
    )
