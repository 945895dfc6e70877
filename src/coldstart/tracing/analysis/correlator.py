"""Correlator - drives window detection, role resolution and accumulation.

The correlator is an explicit state machine over at most two passes of the
event feed::

    seeking_window -> window_open -> finalized
                          |  ^
                          v  |            (a later qualifying start)
                     seeking_window
                          |
                          v
                      replaying -> finalized      (host never resolved)

    seeking_window -> failed                      (no window at all)

Pass one finds the window and resolves roles as it goes.  If the host
process is still unknown at the end of the feed, every accumulator is
discarded, the host is pinned to the fallback candidate and one more full
pass is run against the window found in pass one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import StrEnum
from typing import Any, Callable

from coldstart.config import AnalyzerConfig
from coldstart.errors import MalformedEventError, NoWindowFoundError
from coldstart.tracing.analysis.metrics import MetricsAccumulator
from coldstart.tracing.analysis.report import build_report
from coldstart.tracing.analysis.roles import ProcessRole, ProcessRoles, RoleResolver
from coldstart.tracing.analysis.views import ColdStartReport
from coldstart.tracing.analysis.window import UrlMatcher, WindowDetector, WindowSignal
from coldstart.tracing.feed import EventFeed
from coldstart.tracing.types import TraceEvent

logger = logging.getLogger(__name__)


class CorrelatorState(StrEnum):
    """Lifecycle states of one analysis."""

    SEEKING_WINDOW = "seeking_window"
    WINDOW_OPEN = "window_open"
    REPLAYING = "replaying"
    FINALIZED = "finalized"
    FAILED = "failed"


# Valid transitions: (from_state, to_state)
VALID_TRANSITIONS: set[tuple[CorrelatorState, CorrelatorState]] = {
    (CorrelatorState.SEEKING_WINDOW, CorrelatorState.WINDOW_OPEN),
    (CorrelatorState.SEEKING_WINDOW, CorrelatorState.FAILED),
    # A later qualifying start discards the current window
    (CorrelatorState.WINDOW_OPEN, CorrelatorState.SEEKING_WINDOW),
    (CorrelatorState.WINDOW_OPEN, CorrelatorState.REPLAYING),
    (CorrelatorState.WINDOW_OPEN, CorrelatorState.FINALIZED),
    (CorrelatorState.REPLAYING, CorrelatorState.FINALIZED),
}

# Per-event failures that skip the event instead of aborting the analysis.
SKIPPABLE_ERRORS = (MalformedEventError, KeyError, TypeError, ValueError)

TransitionListener = Callable[[CorrelatorState, CorrelatorState, dict[str, Any]], None]


class InvalidTransitionError(Exception):
    """Raised when a state transition is not allowed."""

    def __init__(self, from_state: CorrelatorState, to_state: CorrelatorState) -> None:
        super().__init__(f"Invalid transition: {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class Correlator:
    """Analyzes one event feed into a :class:`ColdStartReport`.

    An instance owns all of its state; separate instances never share
    anything, so several feeds can be analyzed side by side.
    """

    def __init__(self, config: AnalyzerConfig | None = None) -> None:
        self._config = config or AnalyzerConfig()
        self._matcher = UrlMatcher.from_config(self._config)
        self._listeners: list[TransitionListener] = []
        self._begin()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CorrelatorState:
        return self._state

    @property
    def history(self) -> list[tuple[CorrelatorState, CorrelatorState]]:
        return list(self._history)

    @property
    def roles(self) -> ProcessRoles:
        return self._roles

    @property
    def metrics(self) -> MetricsAccumulator:
        return self._metrics

    @property
    def detector(self) -> WindowDetector:
        return self._detector

    @property
    def passes(self) -> int:
        return self._passes

    @property
    def skipped_events(self) -> int:
        return self._skipped

    def can_transition(self, to_state: CorrelatorState) -> bool:
        return (self._state, to_state) in VALID_TRANSITIONS

    def transition(self, to_state: CorrelatorState, *, metadata: dict[str, Any] | None = None) -> None:
        """Move to *to_state*.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        if not self.can_transition(to_state):
            raise InvalidTransitionError(self._state, to_state)

        from_state = self._state
        self._state = to_state
        self._history.append((from_state, to_state))

        meta = metadata or {}
        for listener in self._listeners:
            try:
                listener(from_state, to_state, meta)
            except Exception:
                logger.debug("Transition listener failed on %s -> %s", from_state, to_state, exc_info=True)

    def on_transition(self, listener: TransitionListener) -> None:
        """Register a transition listener."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def run(self, events: Iterable[TraceEvent]) -> ColdStartReport:
        """Analyze *events* (ordered by timestamp) and return the report.

        Raises:
            NoWindowFoundError: no qualifying request start exists.
        """
        feed = events if isinstance(events, EventFeed) else EventFeed(events)
        self._begin()

        self._scan(feed)
        window = self._detector.window
        if not window.is_open:
            self.transition(CorrelatorState.FAILED)
            raise NoWindowFoundError()

        fallback_host = False
        if not self._roles.is_resolved(ProcessRole.HOST):
            fallback_host = self._replay(feed)

        if not window.is_closed:
            logger.warning("No request end found for the cold start at %.3f", window.start_timestamp)
        for role in (ProcessRole.SECONDARY_SERVICE, ProcessRole.WORKER):
            if not self._roles.is_resolved(role):
                logger.info("No %s process found during the cold start", role)

        self.transition(CorrelatorState.FINALIZED)
        return build_report(
            window,
            self._roles,
            self._metrics,
            passes=self._passes,
            skipped_events=self._skipped,
            fallback_host=fallback_host,
        )

    def _begin(self) -> None:
        self._state = CorrelatorState.SEEKING_WINDOW
        self._history: list[tuple[CorrelatorState, CorrelatorState]] = []
        self._detector = WindowDetector(self._config, self._matcher)
        self._roles = ProcessRoles()
        self._resolver = RoleResolver(self._config, self._roles, self._matcher)
        self._metrics = MetricsAccumulator(self._config, self._roles)
        self._passes = 0
        self._skipped = 0

    def _scan(self, feed: EventFeed) -> None:
        self._passes += 1
        logger.debug("Starting pass %d", self._passes)
        for event in feed:
            try:
                self._process(event)
            except SKIPPABLE_ERRORS as exc:
                self._skipped += 1
                logger.debug(
                    "Skipping %s/%s at %.3f: %s",
                    event.provider_name, event.event_name, event.timestamp, exc,
                )

    def _process(self, event: TraceEvent) -> None:
        observation = self._detector.observe(event)
        if observation.signal is WindowSignal.OPENED:
            self.transition(CorrelatorState.WINDOW_OPEN)
        elif observation.signal is WindowSignal.RESTARTED:
            self._restart()
        if observation.host_pid:
            self._roles.assign(ProcessRole.HOST, observation.host_pid)

        window = self._detector.window
        if not window.is_open:
            return

        self._resolver.observe(event, window)
        if window.contains(event.timestamp):
            self._resolver.observe_in_window(event)
            self._detector.observe_app_details(event, self._roles.host)
            self._metrics.route(event)
        if self._roles.host:
            self._metrics.record_process(event)

    def _restart(self) -> None:
        """Discard everything gathered for the previous window."""
        self.transition(CorrelatorState.SEEKING_WINDOW, metadata={"reason": "restart"})
        self._resolver.reset()
        self._metrics = MetricsAccumulator(self._config, self._roles)
        self.transition(CorrelatorState.WINDOW_OPEN)
        logger.info(
            "Later cold start at %.3f; discarding the earlier window",
            self._detector.window.start_timestamp,
        )

    def _replay(self, feed: EventFeed) -> bool:
        """Second pass with the host pinned to the fallback candidate.

        Returns True when a fallback candidate was found.
        """
        candidate = self._resolver.fallback_host_pid
        if candidate:
            logger.info("Host not found by request start; replaying with fallback host pid %d", candidate)
        else:
            logger.warning("Host not found and no fallback candidate; replaying without host metrics")

        self._resolver.pin_host(candidate)
        self._resolver.reset()
        self._metrics = MetricsAccumulator(self._config, self._roles)
        self._detector.freeze()
        self.transition(CorrelatorState.REPLAYING, metadata={"host_pid": candidate})

        self._scan(feed)
        return bool(candidate)


def analyze(events: Iterable[TraceEvent], config: AnalyzerConfig | None = None) -> ColdStartReport:
    """Convenience wrapper: one :class:`Correlator`, one run."""
    return Correlator(config).run(events)
