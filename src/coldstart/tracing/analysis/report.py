"""Report assembly and rendering.

:func:`build_report` snapshots the correlator's mutable state into a
:class:`~coldstart.tracing.analysis.views.ColdStartReport`.
:func:`render_text` turns that report into the ``.coldstart`` document and
:func:`telemetry_record` into the flat record published to the telemetry
sink.

The ``.coldstart`` layout is consumed by other tools (see
:mod:`coldstart.tracing.analysis.comparison`), so header strings and
spacing must not drift.
"""

from __future__ import annotations

import math
from typing import Any

from coldstart.config import TELEMETRY_FIELD_MAX_LENGTH
from coldstart.tracing.analysis.interval_ledger import IntervalLedger
from coldstart.tracing.analysis.metrics import HardFaultEntry, MetricsAccumulator
from coldstart.tracing.analysis.roles import ProcessRole, ProcessRoles
from coldstart.tracing.analysis.views import (
    ActiveProcess,
    ColdStartReport,
    LedgerLine,
    OutboundCall,
    RoleTiming,
)
from coldstart.tracing.analysis.window import ColdStartWindow

ACTIVE_PROCESS_COLUMN_WIDTH = 50

ACTIVE_PROCESSES_HEADER = "CPU Usage by active processes during cold start:"
NETWORK_SHARES_HEADER = "Network share accesses:"
HOST_JIT_HEADER = "Detailed JIT Times:"
SECONDARY_JIT_HEADER = "Detailed DWAS JIT Times:"
DISK_READS_HEADER = "Detailed Disk Reads:"
HOST_HARD_FAULTS_HEADER = "Detailed Memory Hard Faults:"
OUTBOUND_CALLS_HEADER = "DWAS outbound calls:"
PERF_DATA_HEADER = "DWAS cold start perf data:"
WORKER_HARD_FAULTS_HEADER = "Detailed Language Worker Memory Hard Faults:"
WORKER_JIT_HEADER = "Detailed Language Worker JIT Times:"
WORKER_ASSEMBLY_LOADER_HEADER = "Detailed Language Worker Assembly Loader Times:"
WORKER_TYPE_LOAD_HEADER = "Detailed Language Worker Type Load Times:"


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


def _ledger_lines(ledger: IntervalLedger) -> tuple[LedgerLine, ...]:
    return tuple(LedgerLine(name, entry.duration, entry.count) for name, entry in ledger.ranked())


def _hard_fault_lines(faults: dict[str, HardFaultEntry]) -> tuple[LedgerLine, ...]:
    ranked = sorted(faults.items(), key=lambda item: item[1].duration, reverse=True)
    return tuple(LedgerLine(name, entry.duration, entry.count) for name, entry in ranked)


def _role_timing(role: ProcessRole, roles: ProcessRoles, metrics: MetricsAccumulator) -> RoleTiming:
    pid = roles.get(role)
    m = metrics.metrics_for(role)
    return RoleTiming(
        role=role,
        pid=pid,
        cpu_samples=metrics.cpu_samples_for(pid),
        jit_time=m.jit.total,
        gc_time=m.gc.total,
        assembly_load_time=m.assembly_loads.total,
        type_load_time=m.type_loads.total,
        memory_hard_fault_time=m.hard_fault_time,
        gc_allocation_bytes=m.gc_allocation_bytes,
        jit=_ledger_lines(m.jit),
        assembly_loads=_ledger_lines(m.assembly_loads),
        type_loads=_ledger_lines(m.type_loads),
        memory_hard_faults=_hard_fault_lines(m.hard_faults),
    )


def build_report(
    window: ColdStartWindow,
    roles: ProcessRoles,
    metrics: MetricsAccumulator,
    *,
    passes: int = 1,
    skipped_events: int = 0,
    fallback_host: bool = False,
) -> ColdStartReport:
    """Freeze the final correlator state into a report."""
    active = sorted(metrics.cpu_samples.items(), key=lambda item: item[1], reverse=True)
    active_processes = tuple(
        ActiveProcess(
            name=name,
            pid=pid,
            samples=samples,
            percent=metrics.cpu_share(samples),
            command_line=metrics.process_info.get(f"{name}({pid})", ""),
        )
        for (name, pid), samples in active
    )
    disk_reads = tuple(
        LedgerLine(name, value)
        for name, value in sorted(metrics.disk_reads.items(), key=lambda item: item[1], reverse=True)
    )

    return ColdStartReport(
        start_timestamp=window.start_timestamp,
        end_timestamp=window.end_timestamp,
        http_status=window.http_status,
        correlation_id=window.correlation_id,
        app_name=window.app_name,
        activity_id=window.activity_id,
        host_version=window.host_version,
        timings=tuple(_role_timing(role, roles, metrics) for role in ProcessRole),
        total_cpu_samples=metrics.total_cpu_samples,
        active_processes=active_processes,
        network_shares=tuple(metrics.network_shares),
        disk_read_time=metrics.disk_read_time,
        disk_reads=disk_reads,
        outbound_calls=tuple(OutboundCall(target, latency) for target, latency in metrics.outbound_calls),
        outbound_call_time=metrics.outbound_call_time,
        provisioning_time=metrics.provisioning_time,
        cold_start_perf_data=metrics.cold_start_perf_data,
        passes=passes,
        skipped_events=skipped_events,
        fallback_host=fallback_host,
    )


# ---------------------------------------------------------------------------
# Text rendering
# ---------------------------------------------------------------------------


def format_number(value: float | int) -> str:
    """Shortest readable form: integral values print without a fraction."""
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value.is_integer():
        return str(int(value))
    return format(value, ".15g")


def _lines(rows: list[str]) -> str:
    return "".join(f"{row}\n" for row in rows)


def _ledger_body(lines: tuple[LedgerLine, ...]) -> str:
    return _lines([f"{line.name} : {format_number(line.value)}" for line in lines])


def _hard_fault_body(lines: tuple[LedgerLine, ...]) -> str:
    return _lines([f"{line.name} (count: {line.count}) : {format_number(line.value)}" for line in lines])


def _active_processes_body(processes: tuple[ActiveProcess, ...]) -> str:
    rows = []
    for process in processes:
        share = f"{process.detail} : {format_number(process.percent)}%"
        rows.append(f"{share.ljust(ACTIVE_PROCESS_COLUMN_WIDTH)}, {process.command_line}")
    return _lines(rows)


def _outbound_calls_body(calls: tuple[OutboundCall, ...]) -> str:
    return _lines([f"{call.target} : {call.latency_ms}" for call in calls])


def report_sections(report: ColdStartReport) -> list[tuple[str, str]]:
    """``(header, body)`` pairs for the detailed sections, in document order."""
    host = report.host
    secondary = report.secondary_service
    sections = [
        (ACTIVE_PROCESSES_HEADER, _active_processes_body(report.active_processes)),
        (NETWORK_SHARES_HEADER, _lines(list(report.network_shares))),
        (HOST_JIT_HEADER, _ledger_body(host.jit)),
        (SECONDARY_JIT_HEADER, _ledger_body(secondary.jit)),
        (DISK_READS_HEADER, _ledger_body(report.disk_reads)),
        (HOST_HARD_FAULTS_HEADER, _hard_fault_body(host.memory_hard_faults)),
        (OUTBOUND_CALLS_HEADER, _outbound_calls_body(report.outbound_calls)),
        (PERF_DATA_HEADER, report.cold_start_perf_data),
    ]
    worker = report.worker
    if worker.resolved:
        sections += [
            (WORKER_HARD_FAULTS_HEADER, _hard_fault_body(worker.memory_hard_faults)),
            (WORKER_JIT_HEADER, _ledger_body(worker.jit)),
            (WORKER_ASSEMBLY_LOADER_HEADER, _ledger_body(worker.assembly_loads)),
            (WORKER_TYPE_LOAD_HEADER, _ledger_body(worker.type_loads)),
        ]
    return sections


def render_text(report: ColdStartReport) -> str:
    """Render the ``.coldstart`` document."""
    n = format_number
    host = report.host
    secondary = report.secondary_service
    worker = report.worker

    out = [
        "",
        f"--pid {host.pid} --exclude-events-before {n(report.start_timestamp)}"
        f" --exclude-events-after {n(report.end_timestamp)}",
        f"--app-name {report.app_name} --activity-id {report.activity_id} --host-version {report.host_version}",
        f"\nTotal cold start time msec: {n(report.duration)}",
        f"HttpStatus: {report.http_status}",
        f"\nTotal CPU time during cold start msec (2 cores): {report.total_cpu_samples}",
        f"Functions WebHost CPU time during cold start msec: {host.cpu_samples}",
        f"DWAS CPU time during cold start msec: {secondary.cpu_samples}",
        f"Language Worker CPU time during cold start msec: {worker.cpu_samples}",
        f"\nFunctions WebHost JIT time during specialization msec: {n(host.jit_time)} (count:{host.jit_count})",
        f"Functions WebHost GC time during specialization msec: {n(host.gc_time)}",
        f"DWAS GC time during specialization msec: {n(secondary.gc_time)}",
        f"DWAS JIT time during specialization msec: {n(secondary.jit_time)}  (count:{secondary.jit_count})",
        f"Total Disk read time during specialization msec: {n(report.disk_read_time)}",
        "Total WebHost Functions memory hard faults time during specialization msec: "
        f"{n(host.memory_hard_fault_time)}",
        f"\nTotal DWAS provisioning time msec: {report.provisioning_time}",
        f"Total DWAS outbound calls time during specialization msec: {report.outbound_call_time}",
        f"\nFunctions WebHost GC allocation during specialization in bytes: {host.gc_allocation_bytes:,}",
        f"DWAS GC allocation during specialization in bytes: {secondary.gc_allocation_bytes:,}",
    ]
    if worker.resolved:
        out += [
            f"\nLanguageWorkerPid: {worker.pid}",
            f"Language Worker JIT time during specialization msec: {n(worker.jit_time)} (count:{worker.jit_count})",
            "Language Worker Assembly Loader time during specialization msec: "
            f"{n(worker.assembly_load_time)} (count:{worker.assembly_load_count})",
            "Language Worker Type Load time during specialization msec: "
            f"{n(worker.type_load_time)} (count:{worker.type_load_count})",
            f"Language Worker GC time during specialization msec: {n(worker.gc_time)}",
            "Total Language Worker memory hard faults time during specialization msec: "
            f"{n(worker.memory_hard_fault_time)}",
        ]

    for header, body in report_sections(report):
        out.append(f"\n{header}\n")
        out.append(body)
    return _lines(out)


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


def _whole(value: float) -> int:
    """Round a duration for telemetry; unresolved (non-finite) values become 0."""
    if not math.isfinite(value):
        return 0
    return round(value)


def _truncate(text: str, max_length: int) -> str:
    return text[:max_length] if len(text) > max_length else text


def telemetry_record(
    report: ColdStartReport,
    profile_name: str,
    max_length: int = TELEMETRY_FIELD_MAX_LENGTH,
) -> dict[str, Any]:
    """Flat analysis record for the telemetry sink.

    Durations are rounded to whole milliseconds and every free-text field
    is truncated to *max_length* characters.
    """
    host = report.host
    secondary = report.secondary_service
    worker = report.worker
    text = {header: body for header, body in report_sections(report)}

    def field(header: str) -> str:
        return _truncate(text.get(header, ""), max_length)

    return {
        "AppName": report.app_name,
        "ActivityId": report.activity_id,
        "ProcessId": host.pid,
        "ExcludeEventsBefore": _whole(report.start_timestamp),
        "ExcludeEventsAfter": _whole(report.end_timestamp),
        "ProfileFileName": profile_name,
        "ColdStartTime": _whole(report.duration),
        "JitTime": _whole(host.jit_time),
        "FunctionsGCTime": _whole(host.gc_time),
        "DwasGCTime": _whole(secondary.gc_time),
        "DiskReadTime": _whole(report.disk_read_time),
        "ActiveProcesses": field(ACTIVE_PROCESSES_HEADER),
        "NetworkShareAccesses": field(NETWORK_SHARES_HEADER),
        "DetailedJIT": field(HOST_JIT_HEADER),
        "DetailedDiskRead": field(DISK_READS_HEADER),
        "FunctionsHostVersion": report.host_version,
        "GCAllocationInBytes": host.gc_allocation_bytes,
        "DwasGCAllocationInBytes": secondary.gc_allocation_bytes,
        "FunctionsMemoryHardFaultTime": _whole(host.memory_hard_fault_time),
        "FunctionsDetailedMemoryHardFaults": field(HOST_HARD_FAULTS_HEADER),
        "TotalDwasOutboundCallsTime": report.outbound_call_time,
        "DwasOutboundCalls": field(OUTBOUND_CALLS_HEADER),
        "TotalDwasProvisioningTime": report.provisioning_time,
        "DwasColdStartPerfData": report.cold_start_perf_data,
        "HttpStatus": report.http_status,
        "DwasJitTime": _whole(secondary.jit_time),
        "DwasDetailedJIT": field(SECONDARY_JIT_HEADER),
        "LanguageWorkerJitTime": _whole(worker.jit_time),
        "LanguageWorkerAssemblyLoaderTime": _whole(worker.assembly_load_time),
        "LanguageWorkerGCTime": _whole(worker.gc_time),
        "LanguageWorkerMemoryHardFaultTime": _whole(worker.memory_hard_fault_time),
        "LanguageWorkerDetailedJIT": field(WORKER_JIT_HEADER),
        "LanguageWorkerDetailedAssemblyLoader": field(WORKER_ASSEMBLY_LOADER_HEADER),
        "LanguageWorkerMemoryHardFaults": field(WORKER_HARD_FAULTS_HEADER),
        "LanguageWorkerTypeLoadTime": _whole(worker.type_load_time),
        "LanguageWorkerDetailedTypeLoad": field(WORKER_TYPE_LOAD_HEADER),
        "JitCount": host.jit_count,
        "DwasJitCount": secondary.jit_count,
        "LanguageWorkerJitCount": worker.jit_count,
        "LanguageWorkerAssemblyLoaderCount": worker.assembly_load_count,
        "LanguageWorkerTypeLoadCount": worker.type_load_count,
        "TotalCpuTime": float(report.total_cpu_samples),
        "FunctionsHostCpuTime": float(host.cpu_samples),
        "LanguageWorkerCpuTime": float(worker.cpu_samples),
        "DwasCpuTime": float(secondary.cpu_samples),
    }
