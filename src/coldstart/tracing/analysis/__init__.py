"""Cold-start correlation.

Correlates the events of one capture into a single cold-start report.

Building blocks
~~~~~~~~~~~~~~~
- :class:`IntervalLedger` -- open/close span matching by key.
- :class:`WindowDetector` -- finds the request window of the cold start.
- :class:`RoleResolver` -- discovers the host, secondary service and worker
  process ids.
- :class:`MetricsAccumulator` -- per-role and global costs inside the window.
- :class:`Correlator` -- drives the above over one or two passes.

Output
~~~~~~
- :class:`ColdStartReport` and its view dataclasses.
- :func:`render_text` / :func:`telemetry_record` -- the ``.coldstart``
  document and the telemetry record.
- :mod:`~coldstart.tracing.analysis.comparison` -- reading ``.coldstart``
  documents back for side-by-side comparison.
"""

from __future__ import annotations

from coldstart.tracing.analysis.correlator import (
    Correlator,
    CorrelatorState,
    InvalidTransitionError,
    analyze,
)
from coldstart.tracing.analysis.interval_ledger import IntervalLedger, LedgerEntry
from coldstart.tracing.analysis.metrics import MetricsAccumulator, RoleMetrics
from coldstart.tracing.analysis.report import build_report, render_text, telemetry_record
from coldstart.tracing.analysis.roles import ProcessRole, ProcessRoles, RoleResolver
from coldstart.tracing.analysis.views import (
    ActiveProcess,
    ColdStartReport,
    LedgerLine,
    OutboundCall,
    RoleTiming,
)
from coldstart.tracing.analysis.window import (
    ColdStartWindow,
    UrlMatcher,
    WindowDetector,
    WindowSignal,
)

__all__ = [
    # Driver
    "Correlator",
    "CorrelatorState",
    "InvalidTransitionError",
    "analyze",
    # Building blocks
    "IntervalLedger",
    "LedgerEntry",
    "MetricsAccumulator",
    "RoleMetrics",
    "ProcessRole",
    "ProcessRoles",
    "RoleResolver",
    "ColdStartWindow",
    "UrlMatcher",
    "WindowDetector",
    "WindowSignal",
    # Report
    "build_report",
    "render_text",
    "telemetry_record",
    "ColdStartReport",
    "RoleTiming",
    "LedgerLine",
    "ActiveProcess",
    "OutboundCall",
]
