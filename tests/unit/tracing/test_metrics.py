"""Tests for in-window metric accumulation."""

from __future__ import annotations

import pytest

from coldstart.config import SECONDARY_SERVICE_PROCESS, AnalyzerConfig
from coldstart.errors import MalformedEventError
from coldstart.tracing.analysis.metrics import MetricsAccumulator
from coldstart.tracing.analysis.roles import ProcessRole, ProcessRoles

from tests.helpers.events import (
    HOST_PID,
    HOST_PROCESS,
    SECONDARY_PID,
    WORKER_PID,
    allocation_tick,
    assembly_load_start,
    assembly_load_stop,
    cpu_sample,
    disk_read,
    file_create,
    gc_start,
    gc_stop,
    hard_fault,
    jit_load,
    jit_start,
    outbound_call,
    process_rundown,
    provisioning_summary,
    request_start,
    type_load_start,
    type_load_stop,
)


@pytest.fixture
def roles() -> ProcessRoles:
    r = ProcessRoles()
    r.assign(ProcessRole.HOST, HOST_PID)
    r.assign(ProcessRole.SECONDARY_SERVICE, SECONDARY_PID)
    r.assign(ProcessRole.WORKER, WORKER_PID)
    return r


@pytest.fixture
def metrics(config: AnalyzerConfig, roles: ProcessRoles) -> MetricsAccumulator:
    return MetricsAccumulator(config, roles)


def _feed(metrics: MetricsAccumulator, *events) -> None:
    for event in events:
        metrics.route(event)


class TestJit:
    def test_host_jit(self, metrics: MetricsAccumulator) -> None:
        _feed(metrics, jit_start(10.0, HOST_PID, "m1"), jit_load(14.0, HOST_PID, "m1", "Foo", "Bar"))
        host = metrics.metrics_for(ProcessRole.HOST)
        assert host.jit.total == 4.0
        assert host.jit.duration_of("Foo::Bar") == 4.0

    def test_load_without_start_contributes_nothing(self, metrics: MetricsAccumulator) -> None:
        _feed(metrics, jit_load(14.0, HOST_PID, "m1", "Foo", "Bar"))
        assert metrics.metrics_for(ProcessRole.HOST).jit.total == 0.0

    def test_unknown_process_ignored(self, metrics: MetricsAccumulator) -> None:
        _feed(metrics, jit_start(10.0, 999, "m1"), jit_load(14.0, 999, "m1", "Foo", "Bar"))
        for role in ProcessRole:
            assert metrics.metrics_for(role).jit.total == 0.0

    def test_roles_are_separate(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            jit_start(10.0, HOST_PID, "m1"),
            jit_start(11.0, SECONDARY_PID, "m1"),
            jit_load(12.0, SECONDARY_PID, "m1", "Dwas", "Run"),
            jit_load(15.0, HOST_PID, "m1", "Host", "Run"),
        )
        assert metrics.metrics_for(ProcessRole.HOST).jit.total == 5.0
        assert metrics.metrics_for(ProcessRole.SECONDARY_SERVICE).jit.total == 1.0


class TestGc:
    def test_gc_pair(self, metrics: MetricsAccumulator) -> None:
        _feed(metrics, gc_start(10.0, HOST_PID, 3), gc_stop(12.5, HOST_PID, 3))
        assert metrics.metrics_for(ProcessRole.HOST).gc.total == 2.5

    def test_duplicate_start_overwrites(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            gc_start(10.0, WORKER_PID, 1),
            gc_start(11.0, WORKER_PID, 1),
            gc_stop(12.0, WORKER_PID, 1),
        )
        assert metrics.metrics_for(ProcessRole.WORKER).gc.total == 1.0

    def test_allocation_host_and_secondary(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            allocation_tick(10.0, HOST_PID, 1000),
            allocation_tick(11.0, HOST_PID, 500),
            allocation_tick(12.0, 555, 64, process=SECONDARY_SERVICE_PROCESS),
            allocation_tick(13.0, 999, 77, process="other"),
        )
        assert metrics.metrics_for(ProcessRole.HOST).gc_allocation_bytes == 1500
        assert metrics.metrics_for(ProcessRole.SECONDARY_SERVICE).gc_allocation_bytes == 64


class TestLoaders:
    def test_worker_assembly_load(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            assembly_load_start(10.0, WORKER_PID, "System.Text.Json"),
            assembly_load_stop(13.0, WORKER_PID, "System.Text.Json"),
        )
        loads = metrics.metrics_for(ProcessRole.WORKER).assembly_loads
        assert loads.duration_of("System.Text.Json") == 3.0

    def test_assembly_path_when_name_empty(self, metrics: MetricsAccumulator) -> None:
        path = r"C:\app\Worker.dll"
        _feed(
            metrics,
            assembly_load_start(10.0, WORKER_PID, path=path),
            assembly_load_stop(11.0, WORKER_PID, path=path),
        )
        assert metrics.metrics_for(ProcessRole.WORKER).assembly_loads.duration_of(path) == 1.0

    def test_assembly_without_name_or_path(self, metrics: MetricsAccumulator) -> None:
        with pytest.raises(MalformedEventError):
            metrics.route(assembly_load_start(10.0, WORKER_PID))

    def test_host_assembly_loads_not_tracked(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            assembly_load_start(10.0, HOST_PID, "A"),
            assembly_load_stop(11.0, HOST_PID, "A"),
        )
        assert metrics.metrics_for(ProcessRole.HOST).assembly_loads.total == 0.0

    def test_type_load(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            type_load_start(10.0, WORKER_PID, "t1"),
            type_load_stop(10.5, WORKER_PID, "t1", "Worker.Config"),
        )
        assert metrics.metrics_for(ProcessRole.WORKER).type_loads.duration_of("Worker.Config") == 0.5


class TestKernel:
    def test_hard_faults(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            hard_fault(10.0, HOST_PID, "a.dll", 1.0),
            hard_fault(11.0, HOST_PID, "a.dll", 2.0),
            hard_fault(12.0, WORKER_PID, "w.dll", 4.0),
        )
        host = metrics.metrics_for(ProcessRole.HOST)
        assert host.hard_fault_time == 3.0
        assert host.hard_faults["a.dll"].count == 2
        assert metrics.metrics_for(ProcessRole.WORKER).hard_fault_time == 4.0

    def test_secondary_hard_faults_not_tracked(self, metrics: MetricsAccumulator) -> None:
        _feed(metrics, hard_fault(10.0, SECONDARY_PID, "s.dll", 1.0))
        assert metrics.metrics_for(ProcessRole.SECONDARY_SERVICE).hard_fault_time == 0.0

    def test_disk_reads_any_process(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            disk_read(10.0, 999, "x.bin", 1.25),
            disk_read(11.0, HOST_PID, "x.bin", 0.75),
        )
        assert metrics.disk_reads == {"x.bin": 2.0}
        assert metrics.disk_read_time == 2.0

    def test_cpu_samples(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            cpu_sample(10.0, HOST_PID, HOST_PROCESS),
            cpu_sample(11.0, HOST_PID, HOST_PROCESS),
            cpu_sample(12.0, 999, "other"),
        )
        assert metrics.total_cpu_samples == 3
        assert metrics.cpu_samples_for(HOST_PID) == 2
        assert metrics.cpu_samples_for(0) == 0
        assert metrics.cpu_share(2) == 66.67

    def test_cpu_share_without_samples(self, metrics: MetricsAccumulator) -> None:
        assert metrics.cpu_share(0) == 0.0

    def test_network_shares_from_role_processes(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            file_create(10.0, HOST_PID, r"\\share\site\app.zip"),
            file_create(11.0, HOST_PID, r"C:\local\file.txt"),
            file_create(12.0, 999, r"\\share\other"),
        )
        assert metrics.network_shares == [r"\\share\site\app.zip"]

    def test_process_rundown_first_wins_and_truncated(self, config: AnalyzerConfig, metrics: MetricsAccumulator) -> None:
        long_command = "x" * 250
        metrics.record_process(process_rundown(500.0, HOST_PID, HOST_PROCESS, long_command))
        metrics.record_process(process_rundown(501.0, HOST_PID, HOST_PROCESS, "second"))
        recorded = metrics.process_info[f"{HOST_PROCESS}({HOST_PID})"]
        assert recorded == "x" * config.command_line_max_length

    def test_record_process_ignores_other_kinds(self, metrics: MetricsAccumulator) -> None:
        metrics.record_process(cpu_sample(10.0, HOST_PID, HOST_PROCESS))
        assert metrics.process_info == {}


class TestSecondaryServiceDetails:
    def test_outbound_calls(self, metrics: MetricsAccumulator) -> None:
        _feed(
            metrics,
            outbound_call(10.0, SECONDARY_PID, "https://a", 5),
            outbound_call(11.0, SECONDARY_PID, "https://b", 7),
        )
        assert metrics.outbound_calls == [("https://a", 5), ("https://b", 7)]
        assert metrics.outbound_call_time == 12

    def test_outbound_call_from_other_process_ignored(self, metrics: MetricsAccumulator) -> None:
        _feed(metrics, outbound_call(10.0, 999, "https://a", 5, process="other"))
        assert metrics.outbound_calls == []

    def test_provisioning_summary(self, metrics: MetricsAccumulator) -> None:
        _feed(metrics, provisioning_summary(10.0, SECONDARY_PID, 30, "phase=1"))
        assert metrics.provisioning_time == 30
        assert metrics.cold_start_perf_data == "phase=1"

    def test_other_events_ignored(self, metrics: MetricsAccumulator) -> None:
        _feed(metrics, request_start(10.0, pid=HOST_PID))
        assert metrics.total_cpu_samples == 0
