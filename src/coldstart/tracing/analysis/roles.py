"""Process role resolution.

Three cooperating processes make up one cold start, and none of their ids
is known up front:

- **host**: the process that serves the request.  Primary strategy: the
  next matching request-start event after the window opens (the opening
  event itself comes from the front-end forwarder).  Fallback: the first
  diagnostic-source ``BeginRequest`` activity whose arguments mention the
  URL pattern.  The fallback needs a replay of the whole feed, so the
  correlator only uses it when the primary strategy found nothing.
- **secondary service**: the first in-window event from the well-known
  service process name.
- **worker**: announced by the host in a structured log line, or the
  runtime start of the worker launcher process.

Every role is write-once within a pass.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum

from coldstart.config import AnalyzerConfig
from coldstart.tracing.analysis.window import ColdStartWindow, UrlMatcher
from coldstart.tracing.payload import flatten_arguments
from coldstart.tracing.types import EventKind, TraceEvent

logger = logging.getLogger(__name__)

BEGIN_REQUEST_EVENT = "Microsoft.AspNetCore.Hosting.BeginRequest"

# Host log lines announcing the worker process id.
_WORKER_RELOAD_RE = re.compile(r"Sending FunctionEnvironmentReloadRequest to WorkerProcess with Pid: '?(\d+)'?")
_WORKER_STARTED_RE = re.compile(r"process with Id=(\d+) started$")


class ProcessRole(StrEnum):
    HOST = "host"
    SECONDARY_SERVICE = "secondary_service"
    WORKER = "worker"


@dataclass(slots=True)
class ProcessRoles:
    """Role -> process id.  Zero means "not yet resolved"."""

    _pids: dict[ProcessRole, int] = field(
        default_factory=lambda: {role: 0 for role in ProcessRole},
    )

    def get(self, role: ProcessRole) -> int:
        return self._pids[role]

    @property
    def host(self) -> int:
        return self._pids[ProcessRole.HOST]

    @property
    def secondary_service(self) -> int:
        return self._pids[ProcessRole.SECONDARY_SERVICE]

    @property
    def worker(self) -> int:
        return self._pids[ProcessRole.WORKER]

    def is_resolved(self, role: ProcessRole) -> bool:
        return self._pids[role] != 0

    def assign(self, role: ProcessRole, pid: int) -> bool:
        """Set *role* to *pid* unless it is already resolved.  Returns True if set."""
        if pid == 0 or self._pids[role] != 0:
            return False
        self._pids[role] = pid
        logger.debug("Resolved %s pid %d", role, pid)
        return True

    def role_of(self, pid: int) -> ProcessRole | None:
        """The role *pid* plays, or None.  Unresolved roles never match."""
        if pid == 0:
            return None
        for role, role_pid in self._pids.items():
            if role_pid == pid:
                return role
        return None

    def clear(self, *roles: ProcessRole) -> None:
        for role in roles or tuple(ProcessRole):
            self._pids[role] = 0

    def as_dict(self) -> dict[str, int]:
        return {str(role): pid for role, pid in self._pids.items()}


def parse_worker_pid(summary: str) -> int:
    """Extract the worker process id from a host log line, or 0."""
    if match := _WORKER_RELOAD_RE.search(summary):
        return int(match.group(1))
    if match := _WORKER_STARTED_RE.search(summary.strip()):
        return int(match.group(1))
    return 0


class RoleResolver:
    """Resolves process roles progressively from the event stream."""

    def __init__(
        self,
        config: AnalyzerConfig,
        roles: ProcessRoles,
        matcher: UrlMatcher | None = None,
    ) -> None:
        self._config = config
        self._roles = roles
        self._matcher = matcher or UrlMatcher.from_config(config)
        self._host_pinned = False
        self.fallback_host_pid = 0

    @property
    def roles(self) -> ProcessRoles:
        return self._roles

    @property
    def host_pinned(self) -> bool:
        return self._host_pinned

    def pin_host(self, pid: int) -> None:
        """Fix the host id for a replay; host strategies are disabled afterwards."""
        self._roles.clear(ProcessRole.HOST)
        self._roles.assign(ProcessRole.HOST, pid)
        self._host_pinned = True

    def reset(self) -> None:
        """Forget every resolution made in this pass, except a pinned host."""
        if self._host_pinned:
            self._roles.clear(ProcessRole.SECONDARY_SERVICE, ProcessRole.WORKER)
        else:
            self._roles.clear()
            self.fallback_host_pid = 0

    def observe(self, event: TraceEvent, window: ColdStartWindow) -> None:
        """Host strategies; they only look at events strictly after the window start."""
        if self._host_pinned or not window.is_open or event.timestamp <= window.start_timestamp:
            return

        if event.kind is EventKind.REQUEST_START and not self._roles.is_resolved(ProcessRole.HOST):
            if self._matcher.matches(event.text("RequestURL").unwrap()):
                self._roles.assign(ProcessRole.HOST, event.process_id)
        elif event.kind is EventKind.ACTIVITY_START and not self.fallback_host_pid:
            self._observe_fallback(event)

    def observe_in_window(self, event: TraceEvent) -> None:
        """Opportunistic strategies for the secondary service and the worker."""
        roles = self._roles
        if not roles.is_resolved(ProcessRole.SECONDARY_SERVICE):
            if event.process_name == self._config.secondary_service_process:
                roles.assign(ProcessRole.SECONDARY_SERVICE, event.process_id)

        if roles.is_resolved(ProcessRole.WORKER):
            return
        if event.kind is EventKind.HOST_LOG_VERBOSE and roles.host and event.process_id == roles.host:
            roles.assign(ProcessRole.WORKER, parse_worker_pid(event.text("Summary").or_default("")))
        elif event.kind is EventKind.RUNTIME_START:
            launcher = self._config.worker_launcher_process.lower()
            if launcher in event.process_name.lower():
                roles.assign(ProcessRole.WORKER, event.process_id)

    def _observe_fallback(self, event: TraceEvent) -> None:
        if event.text("EventName").or_default("") != BEGIN_REQUEST_EVENT:
            return
        arguments = event.sequence("Arguments")
        if not arguments.ok:
            return
        if any(self._matcher.matches_argument(arg) for arg in flatten_arguments(arguments.unwrap())):
            self.fallback_host_pid = event.process_id
            logger.debug("Fallback host candidate pid %d at %.3f", event.process_id, event.timestamp)
