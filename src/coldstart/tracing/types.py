"""Trace event types.

A :class:`TraceEvent` is one already-decoded record from a runtime/OS trace:
a relative timestamp, the provider and event names, the emitting process and
a loosely-typed payload.  :class:`EventKind` names the provider/event pairs
the cold-start analysis understands; everything else is ``OTHER``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from coldstart.tracing.payload import (
    FieldResult,
    read_identifier,
    read_integer,
    read_number,
    read_sequence,
    read_text,
)

# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

IIS_PROVIDER = "IIS_Trace"
DIAGNOSTIC_SOURCE_PROVIDER = "Microsoft-Diagnostics-DiagnosticSource"
KERNEL_PROVIDER = "Windows Kernel"
KERNEL_FILE_PROVIDER = "Microsoft-Windows-Kernel-File"
RUNTIME_PROVIDER = "Microsoft-Windows-DotNETRuntime"
HOST_LOGS_PROVIDER = "FunctionsSystemLogsEventSource"
WEBSITES_PROVIDER = "Microsoft-Windows-WebSites"


class EventKind(StrEnum):
    """Kinds of trace events the correlator routes.

    Groups:
    - Request: request_start, request_end (front-end web server)
    - Activity: activity_start, activity_stop (diagnostic source, local host)
    - Runtime: jit_*, gc_*, assembly_load_*, type_load_*, runtime_start
    - Kernel: process_rundown, memory_hard_fault, disk_read, cpu_sample, file_create
    - Host logs: host_log_info, host_log_verbose
    - Secondary service: outbound_call, provisioning_summary
    """

    REQUEST_START = "request_start"
    REQUEST_END = "request_end"

    ACTIVITY_START = "activity_start"
    ACTIVITY_STOP = "activity_stop"

    JIT_START = "jit_start"
    JIT_LOAD = "jit_load"
    GC_START = "gc_start"
    GC_STOP = "gc_stop"
    GC_ALLOCATION_TICK = "gc_allocation_tick"
    ASSEMBLY_LOAD_START = "assembly_load_start"
    ASSEMBLY_LOAD_STOP = "assembly_load_stop"
    TYPE_LOAD_START = "type_load_start"
    TYPE_LOAD_STOP = "type_load_stop"
    RUNTIME_START = "runtime_start"

    PROCESS_RUNDOWN = "process_rundown"
    MEMORY_HARD_FAULT = "memory_hard_fault"
    DISK_READ = "disk_read"
    CPU_SAMPLE = "cpu_sample"
    FILE_CREATE = "file_create"

    HOST_LOG_INFO = "host_log_info"
    HOST_LOG_VERBOSE = "host_log_verbose"

    OUTBOUND_CALL = "outbound_call"
    PROVISIONING_SUMMARY = "provisioning_summary"

    OTHER = "other"


#: (provider, event name) -> kind
EVENT_KINDS: dict[tuple[str, str], EventKind] = {
    (IIS_PROVIDER, "IISGeneral/GENERAL_REQUEST_START"): EventKind.REQUEST_START,
    (IIS_PROVIDER, "IISGeneral/GENERAL_REQUEST_END"): EventKind.REQUEST_END,
    (DIAGNOSTIC_SOURCE_PROVIDER, "Activity1Start/Start"): EventKind.ACTIVITY_START,
    (DIAGNOSTIC_SOURCE_PROVIDER, "Activity1Stop/Stop"): EventKind.ACTIVITY_STOP,
    (RUNTIME_PROVIDER, "Method/JittingStarted"): EventKind.JIT_START,
    (RUNTIME_PROVIDER, "Method/LoadVerbose"): EventKind.JIT_LOAD,
    (RUNTIME_PROVIDER, "GC/Start"): EventKind.GC_START,
    (RUNTIME_PROVIDER, "GC/Stop"): EventKind.GC_STOP,
    (RUNTIME_PROVIDER, "GC/AllocationTick"): EventKind.GC_ALLOCATION_TICK,
    (RUNTIME_PROVIDER, "AssemblyLoader/Start"): EventKind.ASSEMBLY_LOAD_START,
    (RUNTIME_PROVIDER, "AssemblyLoader/Stop"): EventKind.ASSEMBLY_LOAD_STOP,
    (RUNTIME_PROVIDER, "TypeLoad/Start"): EventKind.TYPE_LOAD_START,
    (RUNTIME_PROVIDER, "TypeLoad/Stop"): EventKind.TYPE_LOAD_STOP,
    (RUNTIME_PROVIDER, "Runtime/Start"): EventKind.RUNTIME_START,
    (KERNEL_PROVIDER, "Process/DCStop"): EventKind.PROCESS_RUNDOWN,
    (KERNEL_PROVIDER, "Memory/HardFault"): EventKind.MEMORY_HARD_FAULT,
    (KERNEL_PROVIDER, "DiskIO/Read"): EventKind.DISK_READ,
    (KERNEL_PROVIDER, "PerfInfo/Sample"): EventKind.CPU_SAMPLE,
    (KERNEL_FILE_PROVIDER, "Create"): EventKind.FILE_CREATE,
    (HOST_LOGS_PROVIDER, "RaiseFunctionsEventInfo"): EventKind.HOST_LOG_INFO,
    (HOST_LOGS_PROVIDER, "RaiseFunctionsEventVerbose"): EventKind.HOST_LOG_VERBOSE,
    (WEBSITES_PROVIDER, "EventID(65401)"): EventKind.OUTBOUND_CALL,
    (WEBSITES_PROVIDER, "EventID(15005)"): EventKind.PROVISIONING_SUMMARY,
}


def classify_event(provider_name: str, event_name: str) -> EventKind:
    """Return the kind for a provider/event pair, falling back to OTHER."""
    return EVENT_KINDS.get((provider_name, event_name), EventKind.OTHER)


# ---------------------------------------------------------------------------
# Core data structure
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class TraceEvent:
    """A single decoded trace event.

    *timestamp* is relative milliseconds since the start of the capture;
    timestamps are non-decreasing within a feed but not unique.  The
    *payload* maps field names to loosely-typed values; read it through the
    typed accessors rather than indexing it directly.
    """

    timestamp: float
    provider_name: str
    event_name: str
    process_id: int = 0
    process_name: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    kind: EventKind = field(init=False, default=EventKind.OTHER)

    def __post_init__(self) -> None:
        self.kind = classify_event(self.provider_name, self.event_name)

    # Typed payload accessors

    def text(self, name: str) -> FieldResult[str]:
        return self._tagged(read_text(self.payload, name))

    def integer(self, name: str) -> FieldResult[int]:
        return self._tagged(read_integer(self.payload, name))

    def number(self, name: str) -> FieldResult[float]:
        return self._tagged(read_number(self.payload, name))

    def identifier(self, name: str) -> FieldResult[str]:
        return self._tagged(read_identifier(self.payload, name))

    def sequence(self, name: str) -> FieldResult[tuple[Any, ...]]:
        return self._tagged(read_sequence(self.payload, name))

    def _tagged(self, result: FieldResult[Any]) -> FieldResult[Any]:
        if result.ok:
            return result
        return FieldResult(result.name, error=f"{self.provider_name}/{self.event_name}: {result.error}")

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict in the event-feed line format."""
        d: dict[str, Any] = {
            "timestamp": self.timestamp,
            "provider": self.provider_name,
            "event": self.event_name,
            "pid": self.process_id,
            "process": self.process_name,
        }
        if self.payload:
            d["payload"] = self.payload
        return d

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TraceEvent:
        """Reconstruct a :class:`TraceEvent` from an event-feed record.

        Accepts the short keys written by :meth:`to_dict` as well as the long
        attribute names.  Raises ``KeyError``/``ValueError`` when the
        timestamp, provider or event name is missing or unusable.
        """
        provider = raw["provider"] if "provider" in raw else raw["provider_name"]
        event_name = raw["event"] if "event" in raw else raw["event_name"]
        payload = raw.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError(f"payload must be an object, got {type(payload).__name__}")
        return cls(
            timestamp=float(raw["timestamp"]),
            provider_name=str(provider),
            event_name=str(event_name),
            process_id=int(raw.get("pid", raw.get("process_id", 0)) or 0),
            process_name=str(raw.get("process", raw.get("process_name", "")) or ""),
            payload=payload,
        )
