"""Tests for process role resolution."""

from __future__ import annotations

import pytest

from coldstart.config import SECONDARY_SERVICE_PROCESS, AnalyzerConfig
from coldstart.tracing.analysis.roles import (
    ProcessRole,
    ProcessRoles,
    RoleResolver,
    parse_worker_pid,
)
from coldstart.tracing.analysis.window import ColdStartWindow

from tests.helpers.events import (
    HOST_PID,
    begin_request,
    cpu_sample,
    host_log_verbose,
    request_start,
    runtime_start,
    worker_announcement,
)


@pytest.fixture
def roles() -> ProcessRoles:
    return ProcessRoles()


@pytest.fixture
def resolver(config: AnalyzerConfig, roles: ProcessRoles) -> RoleResolver:
    return RoleResolver(config, roles)


@pytest.fixture
def window() -> ColdStartWindow:
    return ColdStartWindow(start_timestamp=100.0)


class TestProcessRoles:
    def test_unresolved_by_default(self, roles: ProcessRoles) -> None:
        assert roles.host == 0
        assert not roles.is_resolved(ProcessRole.WORKER)

    def test_assign_is_write_once(self, roles: ProcessRoles) -> None:
        assert roles.assign(ProcessRole.HOST, 5)
        assert not roles.assign(ProcessRole.HOST, 6)
        assert roles.host == 5

    def test_assign_zero_is_ignored(self, roles: ProcessRoles) -> None:
        assert not roles.assign(ProcessRole.HOST, 0)
        assert not roles.is_resolved(ProcessRole.HOST)

    def test_role_of(self, roles: ProcessRoles) -> None:
        roles.assign(ProcessRole.WORKER, 9)
        assert roles.role_of(9) is ProcessRole.WORKER
        assert roles.role_of(10) is None

    def test_unresolved_never_matches_pid_zero(self, roles: ProcessRoles) -> None:
        assert roles.role_of(0) is None

    def test_clear_selected(self, roles: ProcessRoles) -> None:
        roles.assign(ProcessRole.HOST, 1)
        roles.assign(ProcessRole.WORKER, 2)
        roles.clear(ProcessRole.WORKER)
        assert roles.as_dict() == {"host": 1, "secondary_service": 0, "worker": 0}


class TestParseWorkerPid:
    def test_reload_request(self) -> None:
        summary = "Sending FunctionEnvironmentReloadRequest to WorkerProcess with Pid: '4242'"
        assert parse_worker_pid(summary) == 4242

    def test_process_started(self) -> None:
        assert parse_worker_pid("dotnet-isolated process with Id=31 started") == 31

    def test_unrelated(self) -> None:
        assert parse_worker_pid("Host started") == 0


class TestHostStrategies:
    def test_primary_second_request_start(
        self, resolver: RoleResolver, roles: ProcessRoles, window: ColdStartWindow,
    ) -> None:
        resolver.observe(request_start(101.0, pid=HOST_PID, app_pool="functiondev-app"), window)
        assert roles.host == HOST_PID

    def test_primary_ignores_the_opening_event(
        self, resolver: RoleResolver, roles: ProcessRoles, window: ColdStartWindow,
    ) -> None:
        resolver.observe(request_start(100.0, pid=HOST_PID), window)
        assert roles.host == 0

    def test_primary_needs_matching_url(
        self, resolver: RoleResolver, roles: ProcessRoles, window: ColdStartWindow,
    ) -> None:
        resolver.observe(request_start(101.0, "http://functiondev-app.net/admin", pid=HOST_PID), window)
        assert roles.host == 0

    def test_primary_first_wins(
        self, resolver: RoleResolver, roles: ProcessRoles, window: ColdStartWindow,
    ) -> None:
        resolver.observe(request_start(101.0, pid=HOST_PID), window)
        resolver.observe(request_start(102.0, pid=999), window)
        assert roles.host == HOST_PID

    def test_nothing_before_window(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        resolver.observe(request_start(101.0, pid=HOST_PID), ColdStartWindow())
        assert roles.host == 0

    def test_fallback_candidate(
        self, resolver: RoleResolver, roles: ProcessRoles, window: ColdStartWindow,
    ) -> None:
        resolver.observe(begin_request(105.0, 77), window)
        assert resolver.fallback_host_pid == 77
        assert roles.host == 0

    def test_fallback_first_candidate_kept(self, resolver: RoleResolver, window: ColdStartWindow) -> None:
        resolver.observe(begin_request(105.0, 77), window)
        resolver.observe(begin_request(106.0, 78), window)
        assert resolver.fallback_host_pid == 77

    def test_fallback_requires_begin_request(self, resolver: RoleResolver, window: ColdStartWindow) -> None:
        resolver.observe(begin_request(105.0, 77, event_name="Microsoft.AspNetCore.Hosting.EndRequest"), window)
        assert resolver.fallback_host_pid == 0

    def test_fallback_uses_url_pattern(self, roles: ProcessRoles, window: ColdStartWindow) -> None:
        resolver = RoleResolver(AnalyzerConfig(url_pattern="/api/x"), roles)
        resolver.observe(begin_request(105.0, 77, "/api/y"), window)
        assert resolver.fallback_host_pid == 0
        resolver.observe(begin_request(106.0, 78, "/api/x"), window)
        assert resolver.fallback_host_pid == 78

    def test_pinned_host_disables_strategies(
        self, resolver: RoleResolver, roles: ProcessRoles, window: ColdStartWindow,
    ) -> None:
        resolver.pin_host(0)
        resolver.observe(request_start(101.0, pid=HOST_PID), window)
        assert roles.host == 0
        assert resolver.host_pinned

    def test_reset_keeps_pinned_host(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        resolver.pin_host(77)
        roles.assign(ProcessRole.WORKER, 5)
        resolver.reset()
        assert roles.host == 77
        assert roles.worker == 0

    def test_reset_clears_everything_unpinned(
        self, resolver: RoleResolver, roles: ProcessRoles, window: ColdStartWindow,
    ) -> None:
        resolver.observe(request_start(101.0, pid=HOST_PID), window)
        resolver.observe(begin_request(105.0, 77), window)
        resolver.reset()
        assert roles.host == 0
        assert resolver.fallback_host_pid == 0


class TestInWindowStrategies:
    def test_secondary_service_by_name(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        resolver.observe_in_window(cpu_sample(110.0, 300, SECONDARY_SERVICE_PROCESS))
        resolver.observe_in_window(cpu_sample(111.0, 301, SECONDARY_SERVICE_PROCESS))
        assert roles.secondary_service == 300

    def test_worker_from_host_log(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        roles.assign(ProcessRole.HOST, HOST_PID)
        resolver.observe_in_window(worker_announcement(110.0, HOST_PID, 400))
        assert roles.worker == 400

    def test_worker_log_from_other_process_ignored(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        roles.assign(ProcessRole.HOST, HOST_PID)
        resolver.observe_in_window(worker_announcement(110.0, 999, 400))
        assert roles.worker == 0

    def test_worker_log_needs_host(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        resolver.observe_in_window(worker_announcement(110.0, HOST_PID, 400))
        assert roles.worker == 0

    def test_worker_started_line(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        roles.assign(ProcessRole.HOST, HOST_PID)
        resolver.observe_in_window(host_log_verbose(110.0, HOST_PID, "python process with Id=512 started"))
        assert roles.worker == 512

    def test_worker_from_launcher_runtime_start(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        resolver.observe_in_window(runtime_start(110.0, 600, process="functionsnethost"))
        assert roles.worker == 600

    def test_worker_write_once(self, resolver: RoleResolver, roles: ProcessRoles) -> None:
        resolver.observe_in_window(runtime_start(110.0, 600))
        resolver.observe_in_window(runtime_start(111.0, 601))
        assert roles.worker == 600
