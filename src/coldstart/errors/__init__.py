"""Coldstart analyzer error hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    WINDOW = "window"
    EVENT = "event"
    REPORT = "report"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class AnalyzerError(Exception):
    """Base error for all analyzer exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


class NoWindowFoundError(AnalyzerError):
    """No qualifying request-start event exists anywhere in the capture.

    Fatal for one analysis: no report is produced and nothing is retried.
    """

    def __init__(self, message: str = "No IIS event found", *, source: str | None = None) -> None:
        details = {"source": source} if source else None
        super().__init__(message, category=ErrorCategory.WINDOW, retryable=False, details=details)
        self.source = source


class MalformedEventError(AnalyzerError):
    """A single event is missing an expected payload field or it has the wrong type."""

    def __init__(self, message: str, *, field_name: str | None = None, event_name: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.EVENT, retryable=False)
        self.field_name = field_name
        self.event_name = event_name


class ReportFormatError(AnalyzerError):
    """A rendered ``.coldstart`` document cannot be read back."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.REPORT, retryable=False)
        self.path = path


class ConfigurationError(AnalyzerError):
    """Invalid or missing configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION, retryable=False)
