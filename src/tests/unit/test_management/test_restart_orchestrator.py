"""Tests for the restart orchestrator."""

import subprocess
from unittest.mock import AsyncMock, Mock, patch

import psutil
import pytest

from mcp_health_monitor.management.exceptions import RestartError
from mcp_health_monitor.management.models import (
    DetectionMethod,
    HealthState,
    LocatedProcess,
    RestartOutcome,
    ServerSpec,
    ServerStatus,
)
from mcp_health_monitor.management.restart_orchestrator import RestartOrchestrator


def _child(pid=4321, return_code=None):
    process = Mock(spec=subprocess.Popen)
    process.pid = pid
    process.poll.return_value = return_code
    return process


class TestRestart:
    """Test single-server restarts."""

    @pytest.fixture(autouse=True)
    def _orchestrator(self, engine):
        self.engine = engine
        self.orchestrator = RestartOrchestrator(engine)

    @pytest.mark.asyncio
    async def test_ghost_server_is_not_touched(self, locator):
        with patch.object(self.orchestrator, "_spawn") as mock_spawn:
            result = await self.orchestrator.restart("ghost")

        assert result.success is False
        assert result.outcome == RestartOutcome.NOT_CONFIGURED
        assert result.message == "Server ghost not found in configuration"
        assert result.to_dict(include_name=False) == {
            "success": False,
            "message": "Server ghost not found in configuration",
        }
        mock_spawn.assert_not_called()
        locator.find_matching.assert_not_called()
        locator.locate.assert_not_called()

    @pytest.mark.asyncio
    async def test_successful_restart(self, locator):
        child = _child(pid=4321)
        locator.locate.return_value = LocatedProcess(4321, DetectionMethod.SPAWNED)

        with patch.object(self.orchestrator, "_terminate", AsyncMock(return_value=[])), \
                patch.object(self.orchestrator, "_spawn", return_value=child):
            result = await self.orchestrator.restart("alpha")

        assert result.success is True
        assert result.outcome == RestartOutcome.RESTARTED
        assert result.message == "Successfully restarted alpha (PID: 4321)"
        assert result.pid == 4321
        locator.record_spawn.assert_called_once_with("alpha", 4321)
        assert self.orchestrator.children["alpha"] is child

    @pytest.mark.asyncio
    async def test_restart_reprobes_after_grace_period(self, locator, clock):
        # A fresh unhealthy verdict must not survive the restart
        await self.engine.check_one("alpha")
        assert self.engine.cache.get("alpha").healthy is False

        locator.locate.return_value = LocatedProcess(4321, DetectionMethod.SPAWNED)
        with patch.object(self.orchestrator, "_terminate", AsyncMock(return_value=[])), \
                patch.object(self.orchestrator, "_spawn", return_value=_child()):
            result = await self.orchestrator.restart("alpha")

        assert result.success is True
        assert self.engine.cache.get("alpha").healthy is True

    @pytest.mark.asyncio
    async def test_still_unhealthy_after_restart(self, locator):
        child = _child(pid=4321, return_code=1)

        with patch.object(self.orchestrator, "_terminate", AsyncMock(return_value=[])), \
                patch.object(self.orchestrator, "_spawn", return_value=child):
            result = await self.orchestrator.restart("alpha")

        assert result.success is False
        assert result.outcome == RestartOutcome.STILL_UNHEALTHY
        assert result.message == "Restarted alpha but health check still failing"

    @pytest.mark.asyncio
    async def test_child_exit_not_masked_by_matching_process(self, locator):
        # Another process running the same command is still in the table
        child = _child(pid=4321, return_code=1)
        locator.locate.return_value = LocatedProcess(9999, DetectionMethod.COMMAND_LINE)

        with patch.object(self.orchestrator, "_terminate", AsyncMock(return_value=[])), \
                patch.object(self.orchestrator, "_spawn", return_value=child):
            result = await self.orchestrator.restart("alpha")

        assert result.success is False
        assert result.outcome == RestartOutcome.STILL_UNHEALTHY
        assert result.message == "Restarted alpha but health check still failing"
        child.poll.assert_called_once()
        # The re-check still ran and recorded a verdict
        locator.locate.assert_called_once()
        assert self.engine.cache.get("alpha") is not None
        assert self.engine.last_status("alpha").pid == 9999

    @pytest.mark.asyncio
    async def test_success_requires_spawned_pid(self, locator):
        child = _child(pid=4321)
        locator.locate.return_value = LocatedProcess(9999, DetectionMethod.COMMAND_LINE)

        with patch.object(self.orchestrator, "_terminate", AsyncMock(return_value=[])), \
                patch.object(self.orchestrator, "_spawn", return_value=child):
            result = await self.orchestrator.restart("alpha")

        assert result.success is False
        assert result.outcome == RestartOutcome.STILL_UNHEALTHY
        assert "9999" not in result.message

    @pytest.mark.asyncio
    async def test_spawn_failure_is_reported_and_cache_kept(self, locator):
        await self.engine.check_one("alpha")
        entry_before = self.engine.cache.get("alpha")

        with patch.object(self.orchestrator, "_terminate", AsyncMock(return_value=[])), \
                patch(
                    "mcp_health_monitor.management.restart_orchestrator.subprocess.Popen",
                    side_effect=FileNotFoundError("No such file or directory: 'sleep'"),
                ):
            result = await self.orchestrator.restart("alpha")

        assert result.success is False
        assert result.outcome == RestartOutcome.FAILED
        assert result.message.startswith("Failed to restart alpha: ")
        assert "No such file or directory" in result.message
        assert self.engine.cache.get("alpha") is entry_before
        locator.record_spawn.assert_not_called()

    @pytest.mark.asyncio
    async def test_terminate_failure_is_reported(self):
        with patch.object(
            self.orchestrator, "_terminate", AsyncMock(side_effect=RuntimeError("boom"))
        ), patch.object(self.orchestrator, "_spawn") as mock_spawn:
            result = await self.orchestrator.restart("alpha")

        assert result.success is False
        assert result.message == "Failed to restart alpha: boom"
        mock_spawn.assert_not_called()


class TestRestartAllUnhealthy:
    """Test restarting every unhealthy server."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, engine, locator, clock):
        orchestrator = RestartOrchestrator(engine)
        unhealthy = [
            ServerStatus.from_spec(
                engine.get_spec(name),
                healthy=False,
                state=HealthState.UNHEALTHY,
                last_checked=clock.now,
            )
            for name in ("alpha", "beta")
        ]
        locator.locate.return_value = LocatedProcess(77, DetectionMethod.SPAWNED)

        with patch.object(engine, "get_unhealthy", AsyncMock(return_value=unhealthy)), \
                patch.object(orchestrator, "_terminate", AsyncMock(return_value=[])), \
                patch.object(
                    orchestrator,
                    "_spawn",
                    side_effect=[RestartError("spawn failed"), _child(pid=77)],
                ) as mock_spawn:
            results = await orchestrator.restart_all_unhealthy()

        assert mock_spawn.call_count == 2
        assert [(r.name, r.success) for r in results] == [
            ("alpha", False),
            ("beta", True),
        ]
        assert results[0].message == "Failed to restart alpha: spawn failed"

    @pytest.mark.asyncio
    async def test_nothing_unhealthy(self, engine):
        orchestrator = RestartOrchestrator(engine)

        with patch.object(engine, "get_unhealthy", AsyncMock(return_value=[])), \
                patch.object(orchestrator, "restart") as mock_restart:
            results = await orchestrator.restart_all_unhealthy()

        assert results == []
        mock_restart.assert_not_called()


class TestTerminate:
    """Test the best-effort terminate step."""

    @pytest.fixture(autouse=True)
    def _orchestrator(self, engine):
        self.orchestrator = RestartOrchestrator(engine)
        self.spec = ServerSpec(name="beta", command="node", args=("index.js", "--stdio"))

    @pytest.mark.asyncio
    async def test_terminates_matches_and_recorded_pid(self, locator):
        locator.find_matching.return_value = [222, 111]
        locator.forget_spawn.return_value = 333
        processes = {pid: Mock(pid=pid) for pid in (111, 222, 333)}
        survivor = processes[222]

        with patch(
            "mcp_health_monitor.management.restart_orchestrator.psutil.Process",
            side_effect=lambda pid: processes[pid],
        ), patch(
            "mcp_health_monitor.management.restart_orchestrator.psutil.wait_procs",
            return_value=([processes[111], processes[333]], [survivor]),
        ):
            stopped = await self.orchestrator._terminate(self.spec)

        assert stopped == [111, 222, 333]
        locator.find_matching.assert_called_once_with("index.js --stdio")
        for process in processes.values():
            process.terminate.assert_called_once()
        survivor.kill.assert_called_once()
        processes[111].kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_victims_are_not_errors(self, locator):
        locator.find_matching.return_value = [111]

        with patch(
            "mcp_health_monitor.management.restart_orchestrator.psutil.Process",
            side_effect=psutil.NoSuchProcess(111),
        ), patch(
            "mcp_health_monitor.management.restart_orchestrator.psutil.wait_procs"
        ) as mock_wait:
            stopped = await self.orchestrator._terminate(self.spec)

        assert stopped == []
        mock_wait.assert_not_called()

    @pytest.mark.asyncio
    async def test_previous_child_is_reaped(self, locator):
        child = _child(pid=500)
        self.orchestrator.children["beta"] = child

        await self.orchestrator._terminate(self.spec)

        child.poll.assert_called_once()
        assert "beta" not in self.orchestrator.children


class TestSpawnAndWait:
    """Test process launch and the startup grace period."""

    @pytest.fixture(autouse=True)
    def _orchestrator(self, engine):
        self.orchestrator = RestartOrchestrator(engine)

    def test_spawn_is_detached_with_streams_discarded(self):
        spec = ServerSpec(
            name="alpha", command="sleep", args=("999",), env={"A": "1"}, cwd="/tmp"
        )

        with patch(
            "mcp_health_monitor.management.restart_orchestrator.subprocess.Popen",
            return_value=_child(),
        ) as mock_popen:
            self.orchestrator._spawn(spec)

        args, kwargs = mock_popen.call_args
        assert args[0] == ["sleep", "999"]
        assert kwargs["start_new_session"] is True
        assert kwargs["stdin"] is subprocess.DEVNULL
        assert kwargs["stdout"] is subprocess.DEVNULL
        assert kwargs["stderr"] is subprocess.DEVNULL
        assert kwargs["cwd"] == "/tmp"
        assert kwargs["env"]["A"] == "1"

    def test_spawn_error_becomes_restart_error(self):
        spec = ServerSpec(name="alpha", command="missing-binary")

        with patch(
            "mcp_health_monitor.management.restart_orchestrator.subprocess.Popen",
            side_effect=PermissionError("denied"),
        ):
            with pytest.raises(RestartError) as exc_info:
                self.orchestrator._spawn(spec)

        assert exc_info.value.details == {"command": "missing-binary"}

    @pytest.mark.asyncio
    async def test_wait_runs_full_grace_period(self):
        child = _child()
        spec = ServerSpec(name="alpha", command="sleep")

        assert await self.orchestrator._wait_for_startup(spec, child) is True
        assert child.poll.call_count >= 2

    @pytest.mark.asyncio
    async def test_wait_stops_when_child_exits(self):
        child = _child(return_code=2)
        spec = ServerSpec(name="alpha", command="sleep")

        assert await self.orchestrator._wait_for_startup(spec, child) is False
        child.poll.assert_called_once()
