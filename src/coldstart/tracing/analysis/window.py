"""Cold-start window detection.

The window of interest starts at the front-end request-start event for a
matching URL and ends at the request-end event carrying the same
correlation id.  Captures often contain several cold starts; only the last
one is the subject under test, so every later qualifying start restarts the
window and the caller discards everything accumulated so far.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import StrEnum

from coldstart.config import AnalyzerConfig
from coldstart.tracing.payload import flatten_arguments
from coldstart.tracing.types import EventKind, TraceEvent

logger = logging.getLogger(__name__)

UNRESOLVED = math.inf

EXECUTED_HTTP_REQUEST = "ExecutedHttpRequest"
PLACEHOLDER_HTTP_STATUS = 200

_REQUEST_ID_RE = re.compile(r'requestId"?\s*:\s*"?([^",]+)')


class UrlMatcher:
    """Decides whether a request URL belongs to the cold start under test.

    A non-empty pattern is a case-insensitive substring match.  An empty
    pattern falls back to the built-in filters: the URL must start with one
    of the default host prefixes and contain the API marker.
    """

    __slots__ = ("pattern", "_prefixes", "_api_marker")

    def __init__(self, pattern: str, default_prefixes: tuple[str, ...], api_marker: str) -> None:
        self.pattern = pattern.lower()
        self._prefixes = tuple(p.lower() for p in default_prefixes)
        self._api_marker = api_marker.lower()

    @classmethod
    def from_config(cls, config: AnalyzerConfig) -> UrlMatcher:
        return cls(config.url_pattern, config.default_url_prefixes, config.api_marker)

    def matches(self, url: str) -> bool:
        url = url.lower()
        if self.pattern:
            return self.pattern in url
        return url.startswith(self._prefixes) and self._api_marker in url

    def matches_argument(self, text: str) -> bool:
        """Looser check for diagnostic-source arguments, which carry no host prefix."""
        needle = self.pattern or self._api_marker
        return needle in text.lower()


@dataclass(slots=True)
class ColdStartWindow:
    """Time window and request identity of the cold start.

    Timestamps are :data:`UNRESOLVED` (positive infinity) until the
    corresponding event is seen.
    """

    start_timestamp: float = UNRESOLVED
    end_timestamp: float = UNRESOLVED
    correlation_id: str | None = None
    http_status: int = 0
    placeholder: bool = False
    app_name: str = ""
    activity_id: str = ""
    host_version: str = ""

    @property
    def is_open(self) -> bool:
        """Whether a start has been found."""
        return self.start_timestamp != UNRESOLVED

    @property
    def is_closed(self) -> bool:
        """Whether the matching end has been found."""
        return self.end_timestamp != UNRESOLVED

    @property
    def duration(self) -> float:
        return self.end_timestamp - self.start_timestamp

    def contains(self, timestamp: float) -> bool:
        """Half-open membership test: ``start < timestamp <= end``."""
        return self.start_timestamp < timestamp <= self.end_timestamp


class WindowSignal(StrEnum):
    """What a single event did to the window."""

    NONE = "none"
    OPENED = "opened"
    RESTARTED = "restarted"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class WindowObservation:
    signal: WindowSignal = WindowSignal.NONE
    host_pid: int = 0


_NO_CHANGE = WindowObservation()


class WindowDetector:
    """Tracks the cold-start window across one pass over the event feed."""

    def __init__(self, config: AnalyzerConfig, matcher: UrlMatcher | None = None) -> None:
        self._config = config
        self._matcher = matcher or UrlMatcher.from_config(config)
        self._window = ColdStartWindow()
        self._frozen = False

    @property
    def window(self) -> ColdStartWindow:
        return self._window

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Keep the current window as-is; window events are ignored from now on."""
        self._frozen = True

    def observe(self, event: TraceEvent) -> WindowObservation:
        """Feed one event; returns what it did to the window.

        On :attr:`WindowSignal.RESTARTED` the detector has already replaced
        its window with a fresh one opened at *event*; the caller is
        responsible for discarding every other accumulator.
        """
        if self._frozen:
            return _NO_CHANGE

        kind = event.kind
        if kind is EventKind.REQUEST_START:
            return self._observe_request_start(event)
        if kind is EventKind.REQUEST_END:
            return self._observe_request_end(event)
        if kind is EventKind.ACTIVITY_START and self._is_host_process(event):
            return self._observe_placeholder_start(event)
        if kind is EventKind.ACTIVITY_STOP and self._is_host_process(event):
            return self._observe_placeholder_stop(event)
        return _NO_CHANGE

    def observe_app_details(self, event: TraceEvent, host_pid: int) -> None:
        """Record app name, host version and request id from the host's request log."""
        if event.kind is not EventKind.HOST_LOG_INFO or not host_pid or event.process_id != host_pid:
            return
        if event.text("EventName").or_default("") != EXECUTED_HTTP_REQUEST:
            return

        window = self._window
        window.app_name = event.text("AppName").or_default("")
        window.host_version = event.text("HostVersion").or_default("")
        summary = event.text("Summary").or_default("")
        if match := _REQUEST_ID_RE.search(summary):
            window.activity_id = match.group(1).strip()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_host_process(self, event: TraceEvent) -> bool:
        return self._config.host_process_marker.lower() in event.process_name.lower()

    def _observe_request_start(self, event: TraceEvent) -> WindowObservation:
        if event.text("AppPoolId").or_default("") != self._config.forwarder_app_pool:
            return _NO_CHANGE
        url = event.text("RequestURL").unwrap()
        if not self._matcher.matches(url):
            return _NO_CHANGE
        correlation_id = event.identifier("ContextId").unwrap()
        signal = self._open(event.timestamp, correlation_id=correlation_id)
        logger.debug("Window %s at %.3f for %s", signal, event.timestamp, url)
        return WindowObservation(signal)

    def _observe_request_end(self, event: TraceEvent) -> WindowObservation:
        window = self._window
        if window.correlation_id is None or window.is_closed:
            return _NO_CHANGE
        if event.identifier("ContextId").unwrap() != window.correlation_id:
            return _NO_CHANGE
        window.end_timestamp = event.timestamp
        window.http_status = event.integer("HttpStatus").or_default(0)
        return WindowObservation(WindowSignal.CLOSED)

    def _observe_placeholder_start(self, event: TraceEvent) -> WindowObservation:
        arguments = event.sequence("Arguments")
        if not arguments.ok:
            return _NO_CHANGE
        marker = self._config.api_marker.lower()
        if not any(marker in arg.lower() for arg in flatten_arguments(arguments.unwrap())):
            return _NO_CHANGE
        signal = self._open(event.timestamp, placeholder=True)
        return WindowObservation(signal, host_pid=event.process_id)

    def _observe_placeholder_stop(self, event: TraceEvent) -> WindowObservation:
        window = self._window
        if not window.placeholder or not window.is_open or window.is_closed:
            return _NO_CHANGE
        window.end_timestamp = event.timestamp
        window.http_status = PLACEHOLDER_HTTP_STATUS
        return WindowObservation(WindowSignal.CLOSED)

    def _open(
        self,
        timestamp: float,
        *,
        correlation_id: str | None = None,
        placeholder: bool = False,
    ) -> WindowSignal:
        restarted = self._window.is_open
        self._window = ColdStartWindow(
            start_timestamp=timestamp,
            correlation_id=correlation_id,
            placeholder=placeholder,
        )
        return WindowSignal.RESTARTED if restarted else WindowSignal.OPENED
