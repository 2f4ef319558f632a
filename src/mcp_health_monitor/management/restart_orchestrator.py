"""Restart protocol: terminate, respawn detached, wait, re-verify."""

import asyncio
import os
import subprocess
from collections import defaultdict
from typing import Dict, List, Optional

import psutil

from ..config.logging import get_logger, sanitize_log_data
from ..config.settings import MonitorConfig
from .exceptions import RestartError, ServerNotConfiguredError
from .health_engine import HealthEngine
from .models import RestartOutcome, RestartResult, ServerSpec

logger = get_logger(__name__)


class RestartOrchestrator:
    """Restarts managed servers and re-checks them through the health engine."""

    def __init__(self, engine: HealthEngine, settings: Optional[MonitorConfig] = None):
        """Initialize the orchestrator.

        Args:
            engine: Health engine used for re-verification
            settings: Timing settings (default: the engine's settings)
        """
        self.engine = engine
        self.settings = settings or engine.settings

        # Spawned processes are kept so that they can be reaped
        self.children: Dict[str, subprocess.Popen] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def restart(self, name: str) -> RestartResult:
        """Restart a configured server.

        Args:
            name: Server name

        Returns:
            RestartResult: Outcome of the attempt; never raises for
            configuration or process failures
        """
        try:
            spec = self.engine.get_spec(name)
        except ServerNotConfiguredError as e:
            return RestartResult(
                name=name,
                success=False,
                outcome=RestartOutcome.NOT_CONFIGURED,
                message=e.message,
            )

        async with self._locks[name]:
            return await self._restart_spec(spec)

    async def restart_all_unhealthy(self) -> List[RestartResult]:
        """Restart every unhealthy server, one at a time."""
        unhealthy = await self.engine.get_unhealthy()

        results = []
        for status in unhealthy:
            results.append(await self.restart(status.name))

        logger.info(
            "Unhealthy servers restarted",
            total=len(results),
            successful=sum(1 for r in results if r.success),
        )
        return results

    async def _restart_spec(self, spec: ServerSpec) -> RestartResult:
        """Run the restart sequence for one server."""
        logger.info("Restarting server", server=spec.name, command=spec.command)

        try:
            await self._terminate(spec)
            process = self._spawn(spec)
        except Exception as e:
            logger.error("Failed to restart server", server=spec.name, error=str(e))
            return RestartResult(
                name=spec.name,
                success=False,
                outcome=RestartOutcome.FAILED,
                message=f"Failed to restart {spec.name}: {e}",
            )

        self.children[spec.name] = process
        self.engine.record_spawn(spec.name, process.pid)

        started = await self._wait_for_startup(spec, process)

        self.engine.invalidate(spec.name)
        status = await self.engine.check_spec(spec)

        # Only the spawned child counts; a command-line match may be a bystander
        if started and status.healthy and status.pid == process.pid:
            logger.info("Server restarted", server=spec.name, pid=process.pid)
            return RestartResult(
                name=spec.name,
                success=True,
                outcome=RestartOutcome.RESTARTED,
                message=f"Successfully restarted {spec.name} (PID: {process.pid})",
                pid=process.pid,
            )

        logger.warning(
            "Server still unhealthy after restart",
            server=spec.name,
            state=status.state.value,
            exited_early=not started,
            matched_pid=status.pid,
        )
        return RestartResult(
            name=spec.name,
            success=False,
            outcome=RestartOutcome.STILL_UNHEALTHY,
            message=f"Restarted {spec.name} but health check still failing",
            pid=process.pid,
        )

    async def _terminate(self, spec: ServerSpec) -> List[int]:
        """Stop any process running the server, best effort.

        Returns:
            List[int]: Pids that were signalled
        """
        victims = set(self.engine.locator.find_matching(spec.joined_args))
        previous = self.engine.locator.forget_spawn(spec.name)
        if previous is not None:
            victims.add(previous)
        victims.discard(os.getpid())

        processes = []
        for pid in sorted(victims):
            try:
                process = psutil.Process(pid)
                process.terminate()
                processes.append(process)
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                logger.warning("Not allowed to stop process", server=spec.name, pid=pid)

        if processes:
            _, alive = await asyncio.to_thread(
                psutil.wait_procs, processes, timeout=self.settings.terminate_timeout
            )
            for process in alive:
                logger.warning("Forcing process shutdown", server=spec.name, pid=process.pid)
                try:
                    process.kill()
                except psutil.NoSuchProcess:
                    pass

        old_child = self.children.pop(spec.name, None)
        if old_child is not None:
            old_child.poll()

        if processes:
            logger.info(
                "Stopped server processes",
                server=spec.name,
                pids=[p.pid for p in processes],
            )
        return [p.pid for p in processes]

    def _spawn(self, spec: ServerSpec) -> subprocess.Popen:
        """Launch the server in its own session with streams discarded."""
        env = {**os.environ, **spec.env} if spec.env else None
        logger.debug(
            "Spawning server",
            server=spec.name,
            argv=[spec.command, *spec.args],
            env=sanitize_log_data(spec.env),
            cwd=spec.cwd,
        )

        try:
            process = subprocess.Popen(
                [spec.command, *spec.args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                cwd=spec.cwd,
                env=env,
                start_new_session=True,  # Outlive the monitor
            )
        except (OSError, ValueError) as e:
            raise RestartError(str(e), details={"command": spec.command})

        logger.info("Server process spawned", server=spec.name, pid=process.pid)
        return process

    async def _wait_for_startup(self, spec: ServerSpec, process: subprocess.Popen) -> bool:
        """Wait out the startup grace period, stopping early if the child exits.

        Returns:
            bool: True if the process was still running at the end of the wait
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.startup_delay

        while True:
            return_code = process.poll()
            if return_code is not None:
                logger.warning(
                    "Server exited during startup",
                    server=spec.name,
                    pid=process.pid,
                    return_code=return_code,
                )
                return False

            remaining = deadline - loop.time()
            if remaining <= 0:
                return True

            await asyncio.sleep(min(self.settings.ready_poll_interval, remaining))
