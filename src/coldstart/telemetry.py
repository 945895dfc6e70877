"""Telemetry sink adapter.

The analysis record is published as a structured log event.  Whatever
collects structured logs in the deployment (an event-source bridge, a log
shipper) forwards it; the analyzer only guarantees the event names and the
field names of the record.
"""

from __future__ import annotations

from typing import Any

from coldstart.utilities.logger import get_logger

TELEMETRY_LOGGER = "coldstart.telemetry"

COLD_START_ANALYSIS_EVENT = "cold_start_analysis"
WINDOW_NOT_FOUND_EVENT = "cold_start_window_not_found"


def emit_cold_start_analysis(record: dict[str, Any]) -> None:
    """Publish one analysis record (see :func:`~coldstart.tracing.analysis.report.telemetry_record`)."""
    get_logger(TELEMETRY_LOGGER).info(COLD_START_ANALYSIS_EVENT, **record)


def emit_window_not_found(profile: str, message: str) -> None:
    """Publish the failure of an analysis that found no cold start."""
    get_logger(TELEMETRY_LOGGER).error(WINDOW_NOT_FOUND_EVENT, profile_file_name=profile, message=message)
