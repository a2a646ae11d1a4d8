"""
Monorun Logging - structured diagnostics with structlog.

Diagnostics are not the report: the report (package output, skips,
failures) goes to stdout through :mod:`monorun.orchestration.reporter`,
while log events go to stderr so that ``--json`` output stays a clean
NDJSON stream.

Architecture:
    ::

        configure_logging(level="WARNING", json_format=False)
            ↓
        structlog processor chain:
          1. filter_by_level
          2. merge_contextvars   (command, run_id from LogContext)
          3. add_log_level, add_logger_name
          4. TimeStamper (iso, optional)
          5. service tag
          6. JSONRenderer or ConsoleRenderer
            ↓
        stdlib logging handler on sys.stderr

    Plain stdlib loggers (asyncio warnings, for instance) share the same
    handler and level.

Examples:
    >>> from monorun.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG")
    >>> log = get_logger(__name__)
    >>> log.debug("supervisor.target_ready", target="@acme/ui")

Tags:
    logging, structlog, observability, monorun
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from contextvars import Token
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _service_tagger(service: str) -> Processor:
    def tag(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return tag


def configure_logging(
    level: str = "WARNING",
    json_format: bool | None = None,
    service: str = "monorun",
    add_timestamp: bool = True,
) -> None:
    """Route monorun diagnostics to stderr.

    May be called more than once; the CLI calls it first with defaults and
    again once the project settings are known.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to WARNING.
        json_format: JSON lines when True, console text when False, and
            JSON whenever stderr is not a terminal when None.
        service: Value of the ``service`` key on every event.
        add_timestamp: Prefix events with an ISO timestamp.
    """
    name = level.upper() if level.upper() in _LEVELS else "WARNING"
    threshold = logging.getLevelNamesMapping()[name]
    stream = sys.stderr
    if json_format is None:
        json_format = not stream.isatty()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _service_tagger(service),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=stream, level=threshold, force=True)


def get_logger(name: str | None = None) -> Any:
    """Return a lazily configured structlog logger named *name*.

    Safe at import time: configuration is looked up on first use, so a
    later :func:`configure_logging` call still applies.
    """
    return structlog.get_logger(name) if name else structlog.get_logger()


class LogContext:
    """Bind keys to every event logged inside the block.

    Previous values are restored on exit, so contexts nest.

    Example:
        async with LogContext(command="build", run_id="abc123"):
            log.info("supervisor.start")
    """

    def __init__(self, **values: Any) -> None:
        self._values = values
        self._tokens: Mapping[str, Token] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._values)
        return self

    def __exit__(self, *exc_info: object) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: object) -> None:
        self.__exit__(*exc_info)


__all__ = ["LogContext", "configure_logging", "get_logger"]
