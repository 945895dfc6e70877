"""Logging setup for the analyzer.

Module code logs through ``logging.getLogger(__name__)``; structured records
(the telemetry sink adapter, CLI milestones) go through structlog, which is
routed into the same stdlib handlers.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    *,
    debug: bool = False,
    json_output: bool = False,
    log_file: str | None = None,
) -> None:
    """Configure stdlib logging and structlog for one analyzer run.

    Args:
        debug: Log skipped events and per-pass details.
        json_output: Render structured records as JSON lines instead of the
            console renderer.
        log_file: Also append plain-text records to this file.
    """
    level = logging.DEBUG if debug else logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=handlers,
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    processors.append(
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_profile(profile: str) -> None:
    """Attach the trace being analyzed to every structured record that follows."""
    structlog.contextvars.bind_contextvars(profile=profile)


def clear_profile() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "coldstart", **kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name, **kwargs)
