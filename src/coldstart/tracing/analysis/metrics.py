"""Per-role and global cost accumulation for in-window events.

The accumulator only ever adds; the correlator discards it wholesale (and
builds a new one) whenever the window restarts or a replay begins, so a
partially cleared state can never leak samples from a discarded cold start
into the retained one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from coldstart.config import AnalyzerConfig
from coldstart.errors import MalformedEventError
from coldstart.tracing.analysis.interval_ledger import IntervalLedger
from coldstart.tracing.analysis.roles import ProcessRole, ProcessRoles
from coldstart.tracing.types import EventKind, TraceEvent

logger = logging.getLogger(__name__)

NETWORK_SHARE_PREFIX = "\\\\"

_JIT = frozenset({EventKind.JIT_START, EventKind.JIT_LOAD})
_GC = frozenset({EventKind.GC_START, EventKind.GC_STOP})
_LOADER = frozenset({
    EventKind.ASSEMBLY_LOAD_START,
    EventKind.ASSEMBLY_LOAD_STOP,
    EventKind.TYPE_LOAD_START,
    EventKind.TYPE_LOAD_STOP,
})
_HARD_FAULT = frozenset({EventKind.MEMORY_HARD_FAULT})

#: Which role-scoped event kinds are charged to each role.
ROLE_CONCERNS: dict[ProcessRole, frozenset[EventKind]] = {
    ProcessRole.HOST: _JIT | _GC | _HARD_FAULT,
    ProcessRole.SECONDARY_SERVICE: _JIT | _GC,
    ProcessRole.WORKER: _JIT | _GC | _LOADER | _HARD_FAULT,
}


@dataclass(slots=True)
class HardFaultEntry:
    count: int = 0
    duration: float = 0.0


def _assembly_key(event: TraceEvent) -> str:
    """Assembly name, or its path when the name is empty."""
    for name in ("AssemblyName", "AssemblyPath"):
        value = event.text(name).or_default("")
        if value:
            return value
    raise MalformedEventError(
        "assembly loader event carries neither AssemblyName nor AssemblyPath",
        field_name="AssemblyName",
        event_name=event.event_name,
    )


class RoleMetrics:
    """Ledgers and totals for one process role."""

    def __init__(self, role: ProcessRole) -> None:
        self.role = role
        self.concerns = ROLE_CONCERNS[role]
        self.jit = IntervalLedger()
        self.gc = IntervalLedger()
        self.assembly_loads = IntervalLedger()
        self.type_loads = IntervalLedger()
        self.hard_faults: dict[str, HardFaultEntry] = {}
        self.hard_fault_time = 0.0
        self.gc_allocation_bytes = 0

    def route(self, event: TraceEvent) -> bool:
        """Charge *event* to this role's ledgers.  Returns False if it is not a concern."""
        kind = event.kind
        if kind not in self.concerns:
            return False

        ts = event.timestamp
        if kind is EventKind.JIT_START:
            self.jit.open(event.text("MethodID").unwrap(), None, ts)
        elif kind is EventKind.JIT_LOAD:
            method_id = event.text("MethodID").unwrap()
            name = f"{event.text('MethodNamespace').unwrap()}::{event.text('MethodName').unwrap()}"
            self.jit.close(method_id, name, ts)
        elif kind is EventKind.GC_START:
            self.gc.open(event.integer("Count").unwrap(), None, ts)
        elif kind is EventKind.GC_STOP:
            self.gc.close(event.integer("Count").unwrap(), None, ts)
        elif kind is EventKind.ASSEMBLY_LOAD_START:
            key = _assembly_key(event)
            self.assembly_loads.open(key, key, ts)
        elif kind is EventKind.ASSEMBLY_LOAD_STOP:
            key = _assembly_key(event)
            self.assembly_loads.close(key, key, ts)
        elif kind is EventKind.TYPE_LOAD_START:
            load_id = event.text("TypeLoadStartID").or_default("")
            if load_id:
                self.type_loads.open(load_id, None, ts)
        elif kind is EventKind.TYPE_LOAD_STOP:
            load_id = event.text("TypeLoadStartID").or_default("")
            if load_id:
                self.type_loads.close(load_id, event.text("TypeName").or_default("") or None, ts)
        elif kind is EventKind.MEMORY_HARD_FAULT:
            self._add_hard_fault(event)
        return True

    def _add_hard_fault(self, event: TraceEvent) -> None:
        file_name = event.text("FileName").unwrap()
        elapsed = event.number("ElapsedTimeMSec").unwrap()
        entry = self.hard_faults.get(file_name)
        if entry is None:
            entry = self.hard_faults[file_name] = HardFaultEntry()
        entry.count += 1
        entry.duration += elapsed
        self.hard_fault_time += elapsed


class MetricsAccumulator:
    """All cost counters for one window of one pass."""

    def __init__(self, config: AnalyzerConfig, roles: ProcessRoles) -> None:
        self._config = config
        self._roles = roles
        self.role_metrics: dict[ProcessRole, RoleMetrics] = {role: RoleMetrics(role) for role in ProcessRole}

        self.disk_reads: dict[str, float] = {}
        self.disk_read_time = 0.0

        self.cpu_samples: dict[tuple[str, int], int] = {}
        self.total_cpu_samples = 0

        self.network_shares: list[str] = []

        self.outbound_calls: list[tuple[str, int]] = []
        self.outbound_call_time = 0
        self.provisioning_time = 0
        self.cold_start_perf_data = ""

        self.process_info: dict[str, str] = {}

    def metrics_for(self, role: ProcessRole) -> RoleMetrics:
        return self.role_metrics[role]

    def route(self, event: TraceEvent) -> None:
        """Charge one in-window event to whichever counters it concerns."""
        kind = event.kind
        if kind is EventKind.OTHER:
            return

        if kind is EventKind.DISK_READ:
            self._add_disk_read(event)
        elif kind is EventKind.CPU_SAMPLE:
            self._add_cpu_sample(event)
        elif kind is EventKind.FILE_CREATE:
            self._add_file_create(event)
        elif kind is EventKind.GC_ALLOCATION_TICK:
            self._add_allocation(event)
        elif kind in (EventKind.OUTBOUND_CALL, EventKind.PROVISIONING_SUMMARY):
            self._add_secondary_service_detail(event)
        else:
            role = self._roles.role_of(event.process_id)
            if role is not None:
                self.role_metrics[role].route(event)

    def record_process(self, event: TraceEvent) -> None:
        """Keep the command line of a process from its rundown event; first one wins."""
        if event.kind is not EventKind.PROCESS_RUNDOWN:
            return
        detail = f"{event.process_name}({event.process_id})"
        if detail in self.process_info:
            return
        command_line = event.text("CommandLine").unwrap()
        self.process_info[detail] = command_line[: self._config.command_line_max_length]

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def _add_disk_read(self, event: TraceEvent) -> None:
        file_name = event.text("FileName").unwrap()
        service_time = event.number("DiskServiceTimeMSec").unwrap()
        self.disk_reads[file_name] = self.disk_reads.get(file_name, 0.0) + service_time
        self.disk_read_time += service_time

    def _add_cpu_sample(self, event: TraceEvent) -> None:
        self.total_cpu_samples += 1
        key = (event.process_name, event.process_id)
        self.cpu_samples[key] = self.cpu_samples.get(key, 0) + 1

    def _add_file_create(self, event: TraceEvent) -> None:
        if self._roles.role_of(event.process_id) is None:
            return
        file_name = event.text("FileName").unwrap()
        if file_name.startswith(NETWORK_SHARE_PREFIX):
            self.network_shares.append(file_name)

    def _add_allocation(self, event: TraceEvent) -> None:
        if event.process_name == self._config.secondary_service_process:
            role = ProcessRole.SECONDARY_SERVICE
        elif self._roles.role_of(event.process_id) is ProcessRole.HOST:
            role = ProcessRole.HOST
        else:
            return
        self.role_metrics[role].gc_allocation_bytes += event.integer("AllocationAmount").unwrap()

    def _add_secondary_service_detail(self, event: TraceEvent) -> None:
        if event.process_name != self._config.secondary_service_process:
            return
        if event.kind is EventKind.OUTBOUND_CALL:
            target = event.text("RequestUrl").unwrap()
            latency = event.integer("LatencyInMilliseconds").unwrap()
            self.outbound_calls.append((target, latency))
            self.outbound_call_time += latency
        else:
            self.provisioning_time = event.integer("TotalTimeTakenForProvisioning").unwrap()
            self.cold_start_perf_data = event.text("ColdStartPerfData").or_default("")

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def cpu_samples_for(self, pid: int) -> int:
        if pid == 0:
            return 0
        return sum(count for (_, sample_pid), count in self.cpu_samples.items() if sample_pid == pid)

    def cpu_share(self, samples: int) -> float:
        """Percentage of all samples, rounded to two decimals."""
        if not self.total_cpu_samples:
            return 0.0
        return round(samples / self.total_cpu_samples * 100, 2)
