"""Data structures for the cold-start report.

These dataclasses are the immutable snapshot assembled once at the end of
an analysis.  They are pure data: no business logic, no I/O.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from coldstart.tracing.analysis.roles import ProcessRole


@dataclass(frozen=True, slots=True)
class LedgerLine:
    """One named row of a ledger (a method, a file, an assembly)."""

    name: str
    value: float
    count: int = 1


@dataclass(frozen=True, slots=True)
class ActiveProcess:
    """CPU sample share of one process during the window."""

    name: str
    pid: int
    samples: int
    percent: float  # 0-100, two decimals
    command_line: str = ""

    @property
    def detail(self) -> str:
        return f"{self.name}({self.pid})"


@dataclass(frozen=True, slots=True)
class OutboundCall:
    target: str
    latency_ms: int


@dataclass(frozen=True, slots=True)
class RoleTiming:
    """Timing breakdown for one process role; all zero when the role is unresolved."""

    role: ProcessRole
    pid: int = 0
    cpu_samples: int = 0
    jit_time: float = 0.0
    gc_time: float = 0.0
    assembly_load_time: float = 0.0
    type_load_time: float = 0.0
    memory_hard_fault_time: float = 0.0
    gc_allocation_bytes: int = 0
    jit: tuple[LedgerLine, ...] = ()
    assembly_loads: tuple[LedgerLine, ...] = ()
    type_loads: tuple[LedgerLine, ...] = ()
    memory_hard_faults: tuple[LedgerLine, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.pid != 0

    @property
    def jit_count(self) -> int:
        return len(self.jit)

    @property
    def assembly_load_count(self) -> int:
        return len(self.assembly_loads)

    @property
    def type_load_count(self) -> int:
        return len(self.type_loads)


@dataclass(frozen=True, slots=True)
class ColdStartReport:
    """Everything one analysis found out about one cold start."""

    start_timestamp: float
    end_timestamp: float
    http_status: int = 0
    correlation_id: str | None = None
    app_name: str = ""
    activity_id: str = ""
    host_version: str = ""
    timings: tuple[RoleTiming, ...] = ()
    total_cpu_samples: int = 0
    active_processes: tuple[ActiveProcess, ...] = ()
    network_shares: tuple[str, ...] = ()
    disk_read_time: float = 0.0
    disk_reads: tuple[LedgerLine, ...] = ()
    outbound_calls: tuple[OutboundCall, ...] = ()
    outbound_call_time: int = 0
    provisioning_time: int = 0
    cold_start_perf_data: str = ""
    passes: int = 1
    skipped_events: int = 0
    fallback_host: bool = False

    @property
    def duration(self) -> float:
        """Elapsed cold-start time in ms (infinite when the end was never seen)."""
        return self.end_timestamp - self.start_timestamp

    @property
    def is_complete(self) -> bool:
        return math.isfinite(self.end_timestamp)

    def timing(self, role: ProcessRole) -> RoleTiming:
        for timing in self.timings:
            if timing.role is role:
                return timing
        return RoleTiming(role=role)

    @property
    def host(self) -> RoleTiming:
        return self.timing(ProcessRole.HOST)

    @property
    def secondary_service(self) -> RoleTiming:
        return self.timing(ProcessRole.SECONDARY_SERVICE)

    @property
    def worker(self) -> RoleTiming:
        return self.timing(ProcessRole.WORKER)

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict representation for JSON serialisation."""

        def ledger(lines: tuple[LedgerLine, ...]) -> list[dict[str, Any]]:
            return [{"name": line.name, "value": line.value, "count": line.count} for line in lines]

        return {
            "start_timestamp": self.start_timestamp,
            "end_timestamp": self.end_timestamp if self.is_complete else None,
            "duration_ms": self.duration if self.is_complete else None,
            "http_status": self.http_status,
            "correlation_id": self.correlation_id,
            "app_name": self.app_name,
            "activity_id": self.activity_id,
            "host_version": self.host_version,
            "roles": {
                str(t.role): {
                    "pid": t.pid,
                    "cpu_samples": t.cpu_samples,
                    "jit_time": t.jit_time,
                    "jit_count": t.jit_count,
                    "gc_time": t.gc_time,
                    "assembly_load_time": t.assembly_load_time,
                    "assembly_load_count": t.assembly_load_count,
                    "type_load_time": t.type_load_time,
                    "type_load_count": t.type_load_count,
                    "memory_hard_fault_time": t.memory_hard_fault_time,
                    "gc_allocation_bytes": t.gc_allocation_bytes,
                    "jit": ledger(t.jit),
                    "assembly_loads": ledger(t.assembly_loads),
                    "type_loads": ledger(t.type_loads),
                    "memory_hard_faults": ledger(t.memory_hard_faults),
                }
                for t in self.timings
            },
            "total_cpu_samples": self.total_cpu_samples,
            "active_processes": [
                {"name": p.name, "pid": p.pid, "samples": p.samples, "percent": p.percent,
                 "command_line": p.command_line}
                for p in self.active_processes
            ],
            "network_shares": list(self.network_shares),
            "disk_read_time": self.disk_read_time,
            "disk_reads": ledger(self.disk_reads),
            "outbound_calls": [{"target": c.target, "latency_ms": c.latency_ms} for c in self.outbound_calls],
            "outbound_call_time": self.outbound_call_time,
            "provisioning_time": self.provisioning_time,
            "cold_start_perf_data": self.cold_start_perf_data,
            "passes": self.passes,
            "skipped_events": self.skipped_events,
            "fallback_host": self.fallback_host,
        }
