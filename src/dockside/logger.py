"""Structured logging singleton.

``logger`` is usable at import time, before Settings are loaded, so config
errors can be reported. The initial level comes from ``LOG_LEVEL``;
``configure()`` re-applies level and output format once ``[logging]`` is known.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _processors(fmt: str) -> list[structlog.types.Processor]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        # JSON output needs tracebacks rendered into the event dict
        *([structlog.processors.format_exc_info] if fmt == "json" else []),
        _renderer(fmt),
    ]


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    # Configure stdlib root logger first so structlog's filter_by_level works
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)

    structlog.configure(
        processors=_processors("console"),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    return structlog.get_logger()


logger = _setup_logging()


def configure(level_name: str, fmt: str = "console") -> None:
    """Apply the ``[logging]`` settings: root level and renderer."""
    logging.getLogger().setLevel(getattr(logging, level_name.upper(), logging.INFO))
    structlog.configure(processors=_processors(fmt))


def _uncaught_exception_handler(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: object,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


sys.excepthook = _uncaught_exception_handler
